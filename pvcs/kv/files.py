"""Directory-backed KV store: one file per key."""

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterable, Iterator

from ..errors import StorageError
from .base import KVStore

logger = logging.getLogger(__name__)

TMP_DIR = "tmp"
LOCK_DIR = "locks"
LOCK_EXPIRE = 30.0
"""Seconds after which an abandoned CAS lock is considered stale."""

_RESERVED = frozenset({TMP_DIR, LOCK_DIR})


@contextmanager
def _os_errors(action: str, key: str) -> Iterator[None]:
    try:
        yield
    except OSError as e:
        raise StorageError(f"Failed to {action} {key!r}: {e}") from e


class Files(KVStore):
    """KV store mapping each key to a file under ``directory``.

    Writes go to a temp file in ``directory/tmp`` first and are then
    renamed (``set``) or hard-linked (``add``) into place, so a reader
    never sees a partial value. ``lock`` is a ``diskcache.Lock`` stored in
    ``directory/locks``, so it holds across processes; ``cas`` runs under it.
    """

    def __init__(self, directory: str, *, lock_expire: float = LOCK_EXPIRE) -> None:
        from diskcache import Cache

        self.directory = os.path.abspath(directory)
        self._tmp_dir = os.path.join(self.directory, TMP_DIR)
        self._lock_expire = lock_expire
        with _os_errors("open", self.directory):
            os.makedirs(self._tmp_dir, exist_ok=True)
            self._locks = Cache(os.path.join(self.directory, LOCK_DIR))

    def close(self) -> None:
        self._locks.close()

    def _path(self, key: str) -> str:
        parts = key.split("/")
        if any(p in ("", ".", "..") for p in parts) or parts[0] in _RESERVED:
            raise ValueError(f"Invalid key: {key!r}")
        return os.path.join(self.directory, *parts)

    def _write_temp(self, value: bytes) -> str:
        if not isinstance(value, bytes):
            raise TypeError(f"Expected bytes, got {type(value).__name__}")
        fd, tmp = tempfile.mkstemp(dir=self._tmp_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            os.unlink(tmp)
            raise
        return tmp

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        with _os_errors("read", key):
            try:
                with open(path, "rb") as f:
                    return f.read()
            except FileNotFoundError:
                return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        with _os_errors("write", key):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp = self._write_temp(value)
            try:
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise

    def add(self, key: str, value: bytes) -> bool:
        path = self._path(key)
        if os.path.isfile(path):
            return False
        with _os_errors("create", key):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp = self._write_temp(value)
            try:
                os.link(tmp, path)
            except FileExistsError:
                return False
            finally:
                os.unlink(tmp)
        return True

    def keys(self, prefix: str = "") -> Iterable[str]:
        base = os.path.join(self.directory, *prefix.split("/")[:-1])
        found: list[str] = []
        with _os_errors("list", prefix):
            for root, dirs, files in os.walk(base):
                rel = os.path.relpath(root, self.directory)
                if rel == ".":
                    dirs[:] = [d for d in dirs if d not in _RESERVED]
                    rel = ""
                else:
                    rel = rel.replace(os.sep, "/") + "/"
                found.extend(
                    rel + name for name in files if (rel + name).startswith(prefix)
                )
        return sorted(found)

    def __contains__(self, key: str) -> bool:
        try:
            return os.path.isfile(self._path(key))
        except ValueError:
            return False

    def remove(self, key: str) -> bool:
        path = self._path(key)
        with _os_errors("remove", key):
            try:
                os.remove(path)
            except FileNotFoundError:
                return False
        return True

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        from diskcache import Lock

        with Lock(self._locks, key, expire=self._lock_expire):
            yield

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        with self.lock(key):
            current = self.get(key)
            if current != expected:
                logger.debug("CAS on %s rejected: stored value changed", key)
                return False
            self.set(key, value)
            return True
