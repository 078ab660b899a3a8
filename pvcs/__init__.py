"""pvcs: content-addressed objects, commits and branches for a minimal VCS."""

from .commit import Commit, CommitGraph, parse_commit, serialize_commit
from .diff import DiffEngine, DiffEntry
from .errors import (
    AlreadyExists,
    ConflictError,
    InvalidName,
    InvalidState,
    NotFound,
    PvcsError,
    StorageError,
    ValidationError,
)
from .kv.base import KVStore
from .objects import ContentStore, hash_bytes
from .refs import Branch, BranchManager
from .repository import (
    DEFAULT_BRANCH,
    VCS_DIR,
    Repository,
    find_repository,
    init_repository,
    memory_repository,
    open_repository,
)
from .tree import TreeBuilder, TreeEntry, parse_tree, serialize_tree

__all__ = [
    "AlreadyExists",
    "Branch",
    "BranchManager",
    "Commit",
    "CommitGraph",
    "ConflictError",
    "ContentStore",
    "DEFAULT_BRANCH",
    "DiffEngine",
    "DiffEntry",
    "InvalidName",
    "InvalidState",
    "KVStore",
    "NotFound",
    "PvcsError",
    "Repository",
    "StorageError",
    "TreeBuilder",
    "TreeEntry",
    "VCS_DIR",
    "ValidationError",
    "find_repository",
    "hash_bytes",
    "init_repository",
    "memory_repository",
    "open_repository",
    "parse_commit",
    "parse_tree",
    "serialize_commit",
    "serialize_tree",
]
