from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

class ICache(ABC):
    """Key/value response cache with TTL and prefix invalidation. A miss is None."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def delete_pattern(self, prefix: str) -> int:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def start(self) -> None:
        """Begin background maintenance. No-op unless a backend needs it."""

    def stop(self) -> None:
        """Stop background maintenance."""

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value
