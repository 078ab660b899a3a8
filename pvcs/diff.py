"""Name-level differences between two commits' trees."""

from dataclasses import dataclass
from typing import Iterable, Literal

from .commit import CommitGraph
from .tree import TreeBuilder

DiffKind = Literal["added", "removed", "changed"]


@dataclass(frozen=True)
class DiffEntry:
    """One name that differs between two trees."""

    name: str
    kind: DiffKind


def diff_maps(before: dict[str, str], after: dict[str, str]) -> list[DiffEntry]:
    """Compare two ``name -> hash`` maps. Result is sorted by name."""
    result = []
    for name in sorted(before.keys() | after.keys()):
        if name not in after:
            result.append(DiffEntry(name, "removed"))
        elif name not in before:
            result.append(DiffEntry(name, "added"))
        elif before[name] != after[name]:
            result.append(DiffEntry(name, "changed"))
    return result


class DiffEngine:
    """Compares commits by walking their tree entries. Never touches refs."""

    def __init__(self, commits: CommitGraph, trees: TreeBuilder) -> None:
        self.commits = commits
        self.trees = trees

    def _entries(self, commit_hash: str, recursive: bool) -> dict[str, str]:
        tree_hash = self.commits.get_commit(commit_hash).tree
        if recursive:
            return self.trees.flatten_tree(tree_hash)
        return {e.name: e.hash for e in self.trees.read_tree(tree_hash)}

    def diff_commits(
        self, commit_a: str, commit_b: str, *, recursive: bool = False
    ) -> list[DiffEntry]:
        """What changed going from ``commit_a`` to ``commit_b``.

        An entry only in A is ``removed``, only in B is ``added``, in both
        under different hashes is ``changed``. With ``recursive=True``
        sub-trees are expanded and blobs are reported by full path.

        Raises:
            NotFound: If either commit or its tree is missing.
        """
        before = self._entries(commit_a, recursive)
        after = self._entries(commit_b, recursive)
        return diff_maps(before, after)

    def diff_working_tree(self, staged: Iterable[tuple[str, str]]) -> list[DiffEntry]:
        """Compare the current tip's files with staged ``(path, hash)`` pairs.

        An unborn branch compares against an empty tree.
        """
        refs = self.commits.refs
        tip = refs.tip(refs.current_branch().name)
        before = self._entries(tip, recursive=True) if tip else {}
        return diff_maps(before, dict(staged))
