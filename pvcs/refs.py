"""Branch refs and the symbolic HEAD pointer.

Each branch is a key ``refs/heads/<name>`` whose value is a commit hash,
or empty while the branch is unborn. ``HEAD`` always holds
``ref: refs/heads/<name>`` and never a bare commit hash. Refs and HEAD
are the only mutable state in a repository.
"""

import logging
import os
from dataclasses import dataclass

from .errors import AlreadyExists, ConflictError, InvalidName, InvalidState, NotFound
from .kv.base import KVStore

logger = logging.getLogger(__name__)

HEAD_KEY = "HEAD"
BRANCH_PREFIX = "refs/heads/"
BRANCH_KEY = BRANCH_PREFIX + "%s"
SYMREF_PREFIX = "ref: "

_SEPARATORS = {"/", "\\", os.sep} | ({os.altsep} if os.altsep else set())


def validate_branch_name(name: str) -> None:
    """Reject names that are blank, contain whitespace, control characters
    or path separators, or would address the refs directory itself."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidName("Branch name cannot be empty")
    if any(ch.isspace() for ch in name):
        raise InvalidName(f"Invalid branch name {name!r}: contains whitespace")
    if any(not ch.isprintable() for ch in name):
        raise InvalidName(f"Invalid branch name {name!r}: contains a control character")
    if any(sep in name for sep in _SEPARATORS):
        raise InvalidName(f"Invalid branch name {name!r}: contains a path separator")
    if name in (".", ".."):
        raise InvalidName(f"Invalid branch name {name!r}")


def head_value(name: str) -> bytes:
    return f"{SYMREF_PREFIX}{BRANCH_KEY % name}".encode()


def _encode_tip(tip: str | None) -> bytes:
    return (tip or "").encode()


def _decode_tip(raw: bytes) -> str | None:
    return raw.decode().strip() or None


@dataclass(frozen=True)
class Branch:
    """A branch as reported by ``list_branches``/``current_branch``."""

    name: str
    is_current: bool = False


class BranchManager:
    """Named mutable pointers into the commit graph, plus HEAD."""

    def __init__(self, store: KVStore) -> None:
        self.store = store

    # -- HEAD --

    def current_branch(self) -> Branch:
        """The branch HEAD names.

        Raises:
            InvalidState: If HEAD is missing, malformed, or names a
                branch that does not exist.
        """
        raw = self.store.get(HEAD_KEY)
        if raw is None:
            raise InvalidState("HEAD not found")
        head = raw.decode().strip()
        target = head[len(SYMREF_PREFIX):] if head.startswith(SYMREF_PREFIX) else ""
        if not target.startswith(BRANCH_PREFIX):
            raise InvalidState(f"HEAD does not name a branch: {head!r}")
        name = target[len(BRANCH_PREFIX):]
        try:
            validate_branch_name(name)
        except InvalidName as e:
            raise InvalidState(f"HEAD names an invalid branch {name!r}") from e
        if BRANCH_KEY % name not in self.store:
            raise InvalidState(f"HEAD names missing branch {name!r}")
        return Branch(name=name, is_current=True)

    def switch_branch(self, name: str) -> None:
        """Point HEAD at an existing branch. Working files are not touched."""
        validate_branch_name(name)
        with self.store.lock(HEAD_KEY):
            if BRANCH_KEY % name not in self.store:
                raise NotFound(f"Branch {name!r} not found")
            self.store.set(HEAD_KEY, head_value(name))
        logger.debug("HEAD -> %s", name)

    # -- Branch CRUD --

    def list_branches(self) -> list[Branch]:
        """All branches, sorted by name, with the current one flagged."""
        current = self.current_branch().name
        names = (key[len(BRANCH_PREFIX):] for key in self.store.keys(BRANCH_PREFIX))
        return [
            Branch(name=name, is_current=name == current)
            for name in sorted(names)
            if "/" not in name
        ]

    def create_branch(self, name: str) -> Branch:
        """Create a branch at the current branch's tip.

        On a repository with no commits the new branch is unborn.

        Raises:
            AlreadyExists: If the branch already exists.
        """
        validate_branch_name(name)
        if BRANCH_KEY % name in self.store:
            raise AlreadyExists(f"Branch {name!r} already exists")
        tip = self.tip(self.current_branch().name)
        if not self.store.add(BRANCH_KEY % name, _encode_tip(tip)):
            raise AlreadyExists(f"Branch {name!r} already exists")
        logger.debug("Created branch %s at %s", name, tip or "(unborn)")
        return Branch(name=name)

    def delete_branch(self, name: str) -> None:
        """Remove a branch ref.

        Raises:
            InvalidState: If ``name`` is the current branch.
            NotFound: If the branch does not exist.
        """
        validate_branch_name(name)
        # HEAD moves only under this lock, so it cannot land on the
        # branch between the check and the removal.
        with self.store.lock(HEAD_KEY):
            if name == self.current_branch().name:
                raise InvalidState(f"Cannot delete current branch {name!r}")
            if not self.store.remove(BRANCH_KEY % name):
                raise NotFound(f"Branch {name!r} not found")
        logger.debug("Deleted branch %s", name)

    # -- Tips --

    def tip(self, name: str) -> str | None:
        """Commit hash a branch points at, or None while unborn."""
        validate_branch_name(name)
        raw = self.store.get(BRANCH_KEY % name)
        if raw is None:
            raise NotFound(f"Branch {name!r} not found")
        return _decode_tip(raw)

    def advance_tip(self, name: str, expected_old_tip: str | None, new_tip: str) -> None:
        """Compare-and-swap a branch tip.

        Raises:
            NotFound: If the branch does not exist.
            ConflictError: If the stored tip is not ``expected_old_tip``.
        """
        validate_branch_name(name)
        if not new_tip:
            raise ValueError("new_tip is required")
        key = BRANCH_KEY % name
        raw = self.store.get(key)
        if raw is None:
            raise NotFound(f"Branch {name!r} not found")
        # A ref written by hand may carry a trailing newline; compare on
        # the stored bytes so the swap stays exact.
        if _decode_tip(raw) == expected_old_tip and self.store.cas(
            key, _encode_tip(new_tip), expected=raw
        ):
            logger.debug(
                "Advanced %s: %s -> %s", name, expected_old_tip or "(unborn)", new_tip
            )
            return

        actual = self.store.get(key)
        if actual is None:
            raise NotFound(f"Branch {name!r} not found")
        logger.debug("Tip of %s moved, CAS from %s lost", name, expected_old_tip)
        raise ConflictError(name, expected_old_tip, _decode_tip(actual))
