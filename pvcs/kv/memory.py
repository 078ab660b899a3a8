"""In-memory KV store."""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from .base import KVStore


def _check_bytes(value: bytes) -> None:
    if not isinstance(value, bytes):
        raise TypeError(f"Expected bytes, got {type(value).__name__}")


class Memory(KVStore):
    """A memory-backed KV store."""

    def __init__(self) -> None:
        self.memory: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    def get(self, key: str) -> bytes | None:
        return self.memory.get(key)

    def set(self, key: str, value: bytes) -> None:
        _check_bytes(value)
        with self._lock:
            self.memory[key] = value

    def add(self, key: str, value: bytes) -> bool:
        _check_bytes(value)
        with self._lock:
            if key in self.memory:
                return False
            self.memory[key] = value
            return True

    def keys(self, prefix: str = "") -> Iterable[str]:
        return sorted(k for k in list(self.memory) if k.startswith(prefix))

    def __contains__(self, key: str) -> bool:
        return key in self.memory

    def remove(self, key: str) -> bool:
        with self._lock:
            return self.memory.pop(key, None) is not None

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        _check_bytes(value)
        with self._lock:
            current = self.memory.get(key)
            if current == expected:
                self.memory[key] = value
                return True
            return False

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            yield
