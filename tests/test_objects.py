"""Tests for the content store."""

import hashlib

import pytest

from pvcs import ContentStore, NotFound, hash_bytes
from pvcs.kv.memory import Memory


class TestHashing:
    def test_sha1_hex(self):
        assert hash_bytes(b"hello") == hashlib.sha1(b"hello").hexdigest()
        assert len(hash_bytes(b"")) == 40

    def test_deterministic(self):
        assert hash_bytes(b"same") == hash_bytes(b"same")
        assert hash_bytes(b"a") != hash_bytes(b"b")


class TestContentStore:
    def test_put_get(self):
        objects = ContentStore(Memory())
        oid = objects.put(b"content")
        assert objects.get(oid) == b"content"
        assert oid == hash_bytes(b"content")

    def test_put_is_idempotent(self):
        store = Memory()
        objects = ContentStore(store)
        first = objects.put(b"same bytes")
        second = objects.put(b"same bytes")
        assert first == second
        assert list(store.keys("objects/")) == [f"objects/{first}"]

    def test_same_id_across_stores(self):
        assert ContentStore(Memory()).put(b"x") == ContentStore(Memory()).put(b"x")

    def test_put_rejects_non_bytes(self):
        with pytest.raises(TypeError, match="Expected bytes"):
            ContentStore(Memory()).put("text")  # type: ignore

    def test_get_missing(self):
        objects = ContentStore(Memory())
        with pytest.raises(NotFound, match="not found"):
            objects.get("0" * 40)

    def test_get_malformed_id(self):
        objects = ContentStore(Memory())
        with pytest.raises(NotFound):
            objects.get("../HEAD")

    def test_exists(self):
        objects = ContentStore(Memory())
        oid = objects.put(b"x")
        assert objects.exists(oid)
        assert oid in objects
        assert not objects.exists("f" * 40)

    @pytest.mark.parametrize("bad", ["", "xyz", "A" * 40, "../../etc/passwd", None])
    def test_exists_never_raises(self, bad):
        assert ContentStore(Memory()).exists(bad) is False

    def test_empty_content(self):
        objects = ContentStore(Memory())
        oid = objects.put(b"")
        assert objects.get(oid) == b""
