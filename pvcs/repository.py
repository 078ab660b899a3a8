"""Repository handle and factory functions.

A ``Repository`` is constructed once per invocation and carries the
storage backend and the components built on it::

    <root>/.pvcs/
      objects/<hash>
      refs/heads/<branch-name>
      HEAD
"""

import logging
import os
import shutil
from datetime import datetime
from typing import Any, Callable, Iterable, Literal, Mapping

from .commit import Commit, CommitGraph
from .diff import DiffEngine, DiffEntry
from .errors import AlreadyExists, NotFound, StorageError
from .kv.base import KVStore
from .kv.files import Files
from .kv.memory import Memory
from .objects import ContentStore
from .refs import BRANCH_KEY, HEAD_KEY, Branch, BranchManager, head_value, validate_branch_name
from .tree import TreeBuilder, TreeEntry

logger = logging.getLogger(__name__)

VCS_DIR = ".pvcs"
DEFAULT_BRANCH = "main"


class Repository:
    """One repository: a ``KVStore`` plus the object, ref and commit layers."""

    def __init__(
        self,
        store: KVStore,
        *,
        root: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.root = root
        self.store = store
        self.objects = ContentStore(store)
        self.trees = TreeBuilder(self.objects)
        self.refs = BranchManager(store)
        self.commits = CommitGraph(self.objects, self.trees, self.refs, clock=clock)
        self.differ = DiffEngine(self.commits, self.trees)

    def __repr__(self) -> str:
        return f"Repository({self.root or 'memory'!r})"

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Trees --

    def create_tree_from_entries(
        self, entries: Iterable["TreeEntry | Mapping[str, Any]"]
    ) -> str:
        return self.trees.build_tree(entries)

    def create_tree_from_paths(self, staged: Iterable[tuple[str, str]]) -> str:
        """Build nested trees from the staging area's ``(path, hash)`` pairs."""
        return self.trees.build_tree_from_paths(staged)

    # -- Commits --

    def create_commit(
        self,
        tree_hash: str,
        parent_hash: str | None = None,
        author: str = "",
        message: str = "",
        *,
        on_conflict: Literal["raise", "retry"] = "raise",
        max_retries: int = 3,
    ) -> Commit:
        return self.commits.create_commit(
            tree_hash,
            parent_hash,
            author,
            message,
            on_conflict=on_conflict,
            max_retries=max_retries,
        )

    def log(self, limit: int | None = 10) -> list[Commit]:
        return self.commits.log(limit)

    # -- Diff --

    def diff_commits(
        self, commit_a: str, commit_b: str, *, recursive: bool = False
    ) -> list[DiffEntry]:
        return self.differ.diff_commits(commit_a, commit_b, recursive=recursive)

    def diff_working_tree(self, staged: Iterable[tuple[str, str]]) -> list[DiffEntry]:
        return self.differ.diff_working_tree(staged)

    # -- Branches --

    def list_branches(self) -> list[Branch]:
        return self.refs.list_branches()

    def current_branch(self) -> Branch:
        return self.refs.current_branch()

    def create_branch(self, name: str) -> Branch:
        return self.refs.create_branch(name)

    def delete_branch(self, name: str) -> None:
        self.refs.delete_branch(name)

    def switch_branch(self, name: str) -> None:
        self.refs.switch_branch(name)


def _write_initial_refs(store: KVStore, branch: str) -> None:
    store.set(BRANCH_KEY % branch, b"")
    store.set(HEAD_KEY, head_value(branch))


def init_repository(
    path: str,
    *,
    branch: str = DEFAULT_BRANCH,
    vcs_dir: str = VCS_DIR,
    clock: Callable[[], datetime] | None = None,
) -> Repository:
    """Create an empty repository at ``path``.

    Args:
        path: Working directory root. Created if missing.
        branch: Name of the initial (unborn) branch.
        vcs_dir: Name of the repository directory inside ``path``.
        clock: Timestamp source for commits (default: UTC now).

    Returns:
        The opened ``Repository``.

    Raises:
        AlreadyExists: If ``path`` already holds a repository.
        StorageError: If the layout cannot be written. Nothing is left
            behind in that case.
    """
    validate_branch_name(branch)
    repo_dir = os.path.join(path, vcs_dir)
    try:
        os.makedirs(path, exist_ok=True)
        os.mkdir(repo_dir)
    except FileExistsError as e:
        raise AlreadyExists(f"Repository already exists at {repo_dir}") from e
    except OSError as e:
        raise StorageError(f"Failed to initialize repository at {repo_dir}: {e}") from e

    store = None
    try:
        try:
            os.mkdir(os.path.join(repo_dir, "objects"))
            os.makedirs(os.path.join(repo_dir, "refs", "heads"))
        except OSError as e:
            raise StorageError(f"Failed to initialize repository at {repo_dir}: {e}") from e
        store = Files(repo_dir)
        _write_initial_refs(store, branch)
    except BaseException:
        # Leave no partial repository behind, so init can be run again.
        if store is not None:
            store.close()
        shutil.rmtree(repo_dir, ignore_errors=True)
        raise
    logger.info("Initialized empty repository in %s", repo_dir)
    return Repository(store, root=os.path.abspath(path), clock=clock)


def open_repository(
    path: str,
    *,
    vcs_dir: str = VCS_DIR,
    clock: Callable[[], datetime] | None = None,
) -> Repository:
    """Open the repository rooted exactly at ``path``.

    Raises:
        NotFound: If ``path`` has no repository directory.
    """
    repo_dir = os.path.join(path, vcs_dir)
    if not os.path.isdir(repo_dir):
        raise NotFound(f"Not a pvcs repository: {os.path.abspath(path)}")
    return Repository(Files(repo_dir), root=os.path.abspath(path), clock=clock)


def find_repository(
    start: str = ".",
    *,
    vcs_dir: str = VCS_DIR,
    clock: Callable[[], datetime] | None = None,
) -> Repository:
    """Open the nearest repository at or above ``start``.

    Raises:
        NotFound: If no parent directory holds a repository.
    """
    current = os.path.abspath(start)
    while True:
        if os.path.isdir(os.path.join(current, vcs_dir)):
            return open_repository(current, vcs_dir=vcs_dir, clock=clock)
        parent = os.path.dirname(current)
        if parent == current:
            raise NotFound(f"Not a pvcs repository (or any parent): {start}")
        current = parent


def memory_repository(
    branch: str = DEFAULT_BRANCH,
    *,
    clock: Callable[[], datetime] | None = None,
) -> Repository:
    """An initialized repository held entirely in memory."""
    validate_branch_name(branch)
    store = Memory()
    _write_initial_refs(store, branch)
    return Repository(store, clock=clock)
