"""
基础服务类 - 所有服务的公共功能
Keep it simple and practical
"""
from typing import Optional, Type, TypeVar

from codeshot.core.config import Settings, get_settings
from codeshot.core.logging import get_logger

# Type variable for singleton decorator
T = TypeVar('T')


def singleton(cls: Type[T]) -> Type[T]:
    """
    单例装饰器 - 确保服务类只有一个实例
    """
    instances = {}

    # Create a wrapper class that inherits from the original
    class SingletonWrapper(cls):  # type: ignore
        def __new__(cls, *args, **kwargs):
            if cls not in instances:
                instances[cls] = object.__new__(cls)
            return instances[cls]

        def __init__(self, *args, **kwargs):
            # Only initialize once
            if not hasattr(self, '_singleton_initialized'):
                super().__init__(*args, **kwargs)
                self._singleton_initialized = True

    # Preserve class metadata
    SingletonWrapper.__name__ = cls.__name__
    SingletonWrapper.__qualname__ = cls.__qualname__
    SingletonWrapper.__module__ = cls.__module__
    SingletonWrapper.__doc__ = cls.__doc__

    return SingletonWrapper  # type: ignore


class BaseService:
    """
    基础服务类 - 提供所有服务的公共功能

    Features:
    - Automatic logger initialization
    - Settings access (injectable for tests)
    """

    def __init__(self, settings: Optional[Settings] = None):
        """初始化基础服务"""
        self.logger = get_logger(self.__class__.__module__)
        self.settings = settings or get_settings()

    def __repr__(self):
        return f"<{self.__class__.__name__}>"
