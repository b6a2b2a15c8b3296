"""Key/value store interfaces.

Guard components depend on this abstraction only; whether a hosted Redis or
the local fallback is active is decided once, when the store is built.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Literal, TypeVar

T = TypeVar("T")

JsonValue = dict[str, Any]


@dataclass(frozen=True)
class StoreWrite:
    """What an ``update`` mutator wants done with the key.

    Attributes:
        action: ``keep`` leaves the key untouched, ``put`` replaces the value,
            ``delete`` removes the key.
        value: New value for ``put``.
        ttl_seconds: Expiry applied to the new value for ``put``.
    """

    action: Literal["keep", "put", "delete"]
    value: JsonValue | None = None
    ttl_seconds: float | None = None

    @classmethod
    def keep(cls) -> "StoreWrite":
        return cls(action="keep")

    @classmethod
    def put(cls, value: JsonValue, ttl_seconds: float) -> "StoreWrite":
        return cls(action="put", value=value, ttl_seconds=ttl_seconds)

    @classmethod
    def delete(cls) -> "StoreWrite":
        return cls(action="delete")


Mutator = Callable[[JsonValue | None], tuple[StoreWrite, T]]


class AbstractKeyValueStore(ABC):
    """Interface for TTL-capable JSON key/value stores."""

    @abstractmethod
    def get(self, key: str) -> JsonValue | None:
        """Return the value stored under key, or None when absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: JsonValue, ttl_seconds: float) -> None:
        """Store value under key, replacing any previous value.

        Args:
            key: Entry key.
            value: JSON-serializable mapping.
            ttl_seconds: Seconds after which the entry disappears.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, key: str, mutator: Mutator[T]) -> T:
        """Atomic read-modify-write of a single key.

        The mutator receives the current value (None when absent) and returns
        the write to apply plus a result handed back to the caller. No other
        writer can interleave between the read and the write for this key.

        Args:
            key: Entry key.
            mutator: Pure function of the current value; may be called more
                than once when an optimistic transaction is retried.

        Returns:
            The result produced by the mutator invocation that was applied.
        """
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return whether the backing store is reachable."""
        raise NotImplementedError

    @property
    def backend_name(self) -> str:
        return type(self).__name__
