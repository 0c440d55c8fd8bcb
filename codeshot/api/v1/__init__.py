"""Version 1 API routers."""

from . import snapshots

__all__ = ["snapshots"]
