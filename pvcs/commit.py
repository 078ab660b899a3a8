"""Commit objects and the commit graph.

Serialized form::

    tree <hash>
    parent <hash>          (omitted on root commits)
    author Name <email>
    timestamp <ISO-8601>

    <message>

A parent must already be stored as a commit before a child can name it,
so the graph is acyclic by construction.
"""

import itertools
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterator, Literal

from .errors import ConflictError, InvalidState, NotFound, ValidationError
from .objects import ContentStore, hash_bytes
from .refs import BranchManager
from .tree import TreeBuilder

logger = logging.getLogger(__name__)

AUTHOR_RE = re.compile(r"[^\S\n]*[^<>\s][^<>\n]*<[^<>\s]+>")
_HEADER_RE = re.compile(r"^(tree|parent|author|timestamp) (.+)$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Commit:
    """A parsed commit. ``hash`` does not take part in equality."""

    tree: str
    parent: str | None
    author: str
    timestamp: datetime
    message: str
    hash: str = field(default="", compare=False)


def serialize_commit(commit: Commit) -> bytes:
    lines = [f"tree {commit.tree}"]
    if commit.parent:
        lines.append(f"parent {commit.parent}")
    lines.append(f"author {commit.author}")
    lines.append(f"timestamp {commit.timestamp.isoformat()}")
    return ("\n".join(lines) + "\n\n" + commit.message).encode("utf-8")


def parse_commit(data: bytes) -> Commit:
    """Inverse of ``serialize_commit``.

    The message is everything after the first blank line, verbatim.

    Raises:
        ValidationError: If ``data`` does not follow the commit grammar.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("commit", "not valid UTF-8") from e
    header, sep, message = text.partition("\n\n")
    if not sep:
        raise ValidationError("commit", "missing blank line before message")

    fields: dict[str, str] = {}
    order = []
    for line in header.split("\n"):
        m = _HEADER_RE.match(line)
        if m is None or m.group(1) in fields:
            raise ValidationError("commit", f"malformed header line {line!r}")
        fields[m.group(1)] = m.group(2)
        order.append(m.group(1))
    expected = ["tree", "parent", "author", "timestamp"]
    if "parent" not in fields:
        expected.remove("parent")
    if order != expected:
        raise ValidationError("commit", f"unexpected header order {order}")

    try:
        timestamp = datetime.fromisoformat(fields["timestamp"])
    except ValueError as e:
        raise ValidationError("timestamp", f"bad timestamp {fields['timestamp']!r}") from e

    return Commit(
        tree=fields["tree"],
        parent=fields.get("parent"),
        author=fields["author"],
        timestamp=timestamp,
        message=message,
        hash=hash_bytes(data),
    )


class CommitGraph:
    """Creates commits, advances the current branch, and walks history.

    - ``create_commit()`` writes a commit and CAS-advances the current branch
    - ``get_commit()`` / ``head()`` to read commits
    - ``history()`` / ``log()`` for first-parent traversal from the tip
    """

    def __init__(
        self,
        objects: ContentStore,
        trees: TreeBuilder,
        refs: BranchManager,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.objects = objects
        self.trees = trees
        self.refs = refs
        self._clock = clock or _utcnow

    # -- Read operations --

    def get_commit(self, commit_hash: str) -> Commit:
        """Load a commit.

        Raises:
            NotFound: If the object is missing or is not a commit.
        """
        data = self.objects.get(commit_hash)
        try:
            return parse_commit(data)
        except ValidationError as e:
            raise NotFound(f"Object {commit_hash} is not a commit") from e

    def head(self) -> Commit:
        """The current branch's tip commit.

        Raises:
            InvalidState: If the current branch is unborn.
        """
        branch = self.refs.current_branch().name
        tip = self.refs.tip(branch)
        if tip is None:
            raise InvalidState(f"Branch {branch!r} has no commits yet")
        return self.get_commit(tip)

    def history(self, commit_hash: str | None = None) -> Iterator[Commit]:
        """Yield commits from ``commit_hash`` (default: current tip) to the root.

        The starting tip is read once; commits that land on the branch
        afterwards are not picked up mid-walk.
        """
        if commit_hash is None:
            commit_hash = self.refs.tip(self.refs.current_branch().name)
        current = commit_hash
        while current is not None:
            commit = self.get_commit(current)
            yield commit
            current = commit.parent

    def log(self, limit: int | None = 10) -> list[Commit]:
        """Most recent commits on the current branch, newest first.

        Args:
            limit: Maximum number of commits; None walks to the root.
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit", "limit must not be negative")
        return list(itertools.islice(self.history(), limit))

    # -- Write operations --

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
        """Write a commit and advance the current branch to it.

        The commit's parent defaults to the current branch tip. The tip
        is advanced by compare-and-swap against the value read here, so
        two writers racing on one branch cannot both succeed.

        Args:
            tree_hash: Hash of an existing tree object.
            parent_hash: Explicit parent commit (default: branch tip).
            author: ``Name <email>``.
            message: Non-empty commit message.
            on_conflict: 'raise' (default) surfaces ``ConflictError``;
                'retry' rebuilds the commit on the fresh tip, up to
                ``max_retries`` times. Commits with an explicit parent
                are never rebased.

        Returns:
            The stored commit, with its hash.

        Raises:
            ValidationError: If a field is malformed.
            NotFound: If the tree or explicit parent does not exist.
            ConflictError: If another writer moved the branch tip.
        """
        if on_conflict not in ("raise", "retry"):
            raise ValueError(f"Unknown on_conflict: {on_conflict!r}")
        if not tree_hash:
            raise ValidationError("tree_hash", "commit tree hash is required")
        if not author or not AUTHOR_RE.fullmatch(author):
            raise ValidationError("author", "invalid author format, use 'Name <email>'")
        if not message or not message.strip():
            raise ValidationError("message", "commit message is required")

        self.trees.read_tree(tree_hash)
        if parent_hash:
            self.get_commit(parent_hash)

        branch = self.refs.current_branch().name
        old_tip = self.refs.tip(branch)
        commit = Commit(
            tree=tree_hash,
            parent=parent_hash or old_tip,
            author=author,
            timestamp=self._clock(),
            message=message,
        )

        attempts = 0
        while True:
            data = serialize_commit(commit)
            commit = replace(commit, hash=self.objects.put(data))
            try:
                self.refs.advance_tip(branch, old_tip, commit.hash)
            except ConflictError as e:
                attempts += 1
                if on_conflict == "raise" or parent_hash or attempts > max_retries:
                    raise
                logger.debug("Retrying commit on %s against %s", branch, e.actual)
                old_tip = e.actual
                commit = replace(commit, parent=old_tip)
                continue
            logger.debug("Committed %s on %s", commit.hash[:8], branch)
            return commit
