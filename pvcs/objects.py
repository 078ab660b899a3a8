"""Content store: immutable bytes keyed by their SHA-1 digest.

Objects live under ``objects/<hash>`` in a flat namespace. The store is
append-only: writing content that is already present is a no-op, so
concurrent writers of identical bytes converge on the same object.
"""

import hashlib
import logging
import re

from .errors import NotFound
from .kv.base import KVStore

logger = logging.getLogger(__name__)

OBJECT_KEY = "objects/%s"
HASH_RE = re.compile(r"^[0-9a-f]{40}$")


def hash_bytes(data: bytes) -> str:
    """Lowercase hex SHA-1 of ``data``."""
    return hashlib.sha1(data).hexdigest()


def is_object_id(value: object) -> bool:
    """Whether ``value`` is a well-formed object id."""
    return isinstance(value, str) and HASH_RE.match(value) is not None


class ContentStore:
    """Content-addressed object store over a ``KVStore``."""

    def __init__(self, store: KVStore) -> None:
        self.store = store

    def put(self, data: bytes) -> str:
        """Store ``data`` and return its id. Idempotent."""
        if not isinstance(data, bytes):
            raise TypeError(f"Expected bytes, got {type(data).__name__}")
        object_id = hash_bytes(data)
        if self.store.add(OBJECT_KEY % object_id, data):
            logger.debug("Stored object %s (%d bytes)", object_id[:8], len(data))
        else:
            logger.debug("Object %s already in store, skipped", object_id[:8])
        return object_id

    def get(self, object_id: str) -> bytes:
        """Return the bytes stored under ``object_id``.

        Raises:
            NotFound: If no such object exists.
        """
        if not is_object_id(object_id):
            raise NotFound(f"Object {object_id!r} not found")
        data = self.store.get(OBJECT_KEY % object_id)
        if data is None:
            raise NotFound(f"Object {object_id} not found")
        return data

    def exists(self, object_id: str) -> bool:
        """Whether ``object_id`` is stored. Malformed ids report False."""
        return is_object_id(object_id) and (OBJECT_KEY % object_id) in self.store

    def __contains__(self, object_id: str) -> bool:
        return self.exists(object_id)
