"""Key-value cache stores."""
from codeshot.repositories.cache import CacheStore, InMemoryCache

__all__ = ["CacheStore", "InMemoryCache"]
