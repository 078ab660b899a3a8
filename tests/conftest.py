import itertools
from datetime import datetime, timedelta, timezone

import pytest

from pvcs import memory_repository


class FakeClock:
    """Deterministic, strictly increasing commit timestamps."""

    def __init__(self) -> None:
        self._ticks = itertools.count()
        self.start = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.start + timedelta(seconds=next(self._ticks))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(clock):
    return memory_repository(clock=clock)


def stage(repo, **files: bytes) -> str:
    """Store blobs and build a flat tree from them."""
    entries = [
        {"type": "blob", "hash": repo.objects.put(content), "name": name}
        for name, content in files.items()
    ]
    return repo.create_tree_from_entries(entries)
