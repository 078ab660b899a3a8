"""Tests for the Files KV store."""

import os
import shutil
import tempfile
import threading

import pytest

from pvcs.errors import StorageError
from pvcs.kv.files import Files


@pytest.fixture
def files_store():
    tmpdir = tempfile.mkdtemp()
    store = Files(tmpdir)
    yield store, tmpdir
    store.close()
    shutil.rmtree(tmpdir, ignore_errors=True)


class TestFilesBasic:
    def test_set_get(self, files_store):
        store, _ = files_store
        store.set("k", b"v")
        assert store.get("k") == b"v"

    def test_get_missing(self, files_store):
        store, _ = files_store
        assert store.get("nope") is None

    def test_contains(self, files_store):
        store, _ = files_store
        store.set("k", b"v")
        assert "k" in store
        assert "nope" not in store
        assert "../escape" not in store

    def test_nested_key_is_a_file(self, files_store):
        store, tmpdir = files_store
        store.set("refs/heads/main", b"abc")
        with open(os.path.join(tmpdir, "refs", "heads", "main"), "rb") as f:
            assert f.read() == b"abc"

    def test_type_error_on_non_bytes(self, files_store):
        store, _ = files_store
        with pytest.raises(TypeError, match="Expected bytes"):
            store.set("k", "not bytes")  # type: ignore

    def test_invalid_key(self, files_store):
        store, _ = files_store
        with pytest.raises(ValueError, match="Invalid key"):
            store.set("../outside", b"v")
        with pytest.raises(ValueError, match="Invalid key"):
            store.set("tmp/x", b"v")

    def test_no_temp_files_left(self, files_store):
        store, tmpdir = files_store
        store.set("a", b"1")
        store.add("b", b"2")
        store.add("b", b"3")
        assert os.listdir(os.path.join(tmpdir, "tmp")) == []


class TestFilesKeys:
    def test_keys_prefix(self, files_store):
        store, _ = files_store
        store.set("refs/heads/main", b"")
        store.set("refs/heads/dev", b"")
        store.set("objects/" + "a" * 40, b"x")
        store.set("HEAD", b"ref: refs/heads/main")
        assert list(store.keys("refs/heads/")) == ["refs/heads/dev", "refs/heads/main"]

    def test_keys_skip_internal_dirs(self, files_store):
        store, _ = files_store
        store.set("HEAD", b"x")
        store.cas("refs/heads/main", b"1", expected=None)
        keys = list(store.keys())
        assert keys == ["HEAD", "refs/heads/main"]

    def test_keys_missing_prefix_dir(self, files_store):
        store, _ = files_store
        assert list(store.keys("refs/heads/")) == []


class TestFilesPersistence:
    def test_survives_reload(self, files_store):
        store, tmpdir = files_store
        store.set("k", b"persistent")
        store2 = Files(tmpdir)
        assert store2.get("k") == b"persistent"
        store2.close()

    def test_cas_persists(self, files_store):
        store, tmpdir = files_store
        store.set("k", b"old")
        assert store.cas("k", b"new", expected=b"old")
        store2 = Files(tmpdir)
        assert store2.get("k") == b"new"
        store2.close()


class TestFilesAddRemove:
    def test_add_new(self, files_store):
        store, _ = files_store
        assert store.add("objects/x", b"v")
        assert store.get("objects/x") == b"v"

    def test_add_existing_keeps_value(self, files_store):
        store, _ = files_store
        store.set("k", b"first")
        assert not store.add("k", b"second")
        assert store.get("k") == b"first"

    def test_remove(self, files_store):
        store, _ = files_store
        store.set("k", b"v")
        assert store.remove("k")
        assert store.get("k") is None

    def test_remove_missing(self, files_store):
        store, _ = files_store
        assert not store.remove("k")


class TestFilesCAS:
    def test_cas_success(self, files_store):
        store, _ = files_store
        store.set("k", b"old")
        assert store.cas("k", b"new", expected=b"old")
        assert store.get("k") == b"new"

    def test_cas_failure(self, files_store):
        store, _ = files_store
        store.set("k", b"old")
        assert not store.cas("k", b"new", expected=b"wrong")
        assert store.get("k") == b"old"

    def test_cas_create(self, files_store):
        store, _ = files_store
        assert store.cas("k", b"val", expected=None)
        assert not store.cas("k", b"other", expected=None)
        assert store.get("k") == b"val"

    def test_cas_two_instances_one_winner(self, files_store):
        store, tmpdir = files_store
        other = Files(tmpdir)
        store.set("k", b"0")
        wins = []

        def try_cas(s, thread_id):
            if s.cas("k", f"t{thread_id}".encode(), expected=b"0"):
                wins.append(thread_id)

        threads = [
            threading.Thread(target=try_cas, args=(store if i % 2 else other, i))
            for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        other.close()

        assert len(wins) == 1
        assert store.get("k") == f"t{wins[0]}".encode()

    def test_lock_spans_instances(self, files_store):
        store, tmpdir = files_store
        other = Files(tmpdir)
        order = []

        def hold():
            with other.lock("HEAD"):
                order.append("second")

        with store.lock("HEAD"):
            t = threading.Thread(target=hold)
            t.start()
            t.join(timeout=0.2)
            assert t.is_alive()
            order.append("first")
        t.join()
        other.close()
        assert order == ["first", "second"]

    def test_lock_does_not_block_cas_on_other_keys(self, files_store):
        store, _ = files_store
        with store.lock("HEAD"):
            assert store.cas("refs/heads/main", b"a", expected=None)
        assert "HEAD" not in store


class TestFilesErrors:
    def test_read_directory_is_storage_error(self, files_store):
        store, _ = files_store
        store.set("refs/heads/main", b"")
        with pytest.raises(StorageError) as exc_info:
            store.get("refs/heads")
        assert isinstance(exc_info.value.__cause__, OSError)
