"""Abstract KV store interface."""

from abc import ABC, abstractmethod
from typing import ContextManager, Iterable


class KVStore(ABC):
    """Key-value store operating on bytes only.

    Keys are ``/``-separated relative paths (``objects/<hash>``,
    ``refs/heads/main``, ``HEAD``). Parsing of values is handled at
    higher layers.
    """

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Get bytes value for key, or None if not found."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Replace the value for key. Readers see the old or new value, never a mix."""

    @abstractmethod
    def add(self, key: str, value: bytes) -> bool:
        """Set value only if key is absent.

        Returns True if the key was created, False if it already existed
        (the stored value is left untouched).
        """

    @abstractmethod
    def keys(self, prefix: str = "") -> Iterable[str]:
        """Iterate over keys starting with prefix."""

    @abstractmethod
    def __contains__(self, key: str) -> bool:
        """Check if key exists in store."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove a key. Returns False if it was not present."""

    @abstractmethod
    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        """Atomic compare-and-swap.

        Set value only if current value equals expected.
        None means "key must not exist".

        Returns True if swap succeeded, False otherwise.
        """

    @abstractmethod
    def lock(self, key: str) -> ContextManager[None]:
        """Exclusive lock named by key, held for the duration of a with-block.

        Used to make read-then-write sequences on refs atomic. Locks are
        independent of the stored values and are not reentrant.
        """

    def close(self) -> None:
        """Release any resources held by the store."""
