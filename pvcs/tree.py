"""Tree objects: canonical, name-sorted manifests of blobs and sub-trees.

Serialized form is one ``"<type> <hash> <name>"`` line per entry, sorted
by name, each newline-terminated. Two entry sets that are equal as sets
always serialize (and therefore hash) identically.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable

from .errors import NotFound, ValidationError
from .objects import ContentStore, is_object_id

ENTRY_TYPES = ("blob", "tree")


@dataclass(frozen=True)
class TreeEntry:
    """One named entry of a tree."""

    type: str
    hash: str
    name: str

    @classmethod
    def coerce(cls, value: "TreeEntry | Mapping[str, Any]") -> "TreeEntry":
        """Accept a ``TreeEntry`` or a mapping with type/hash/name keys."""
        if isinstance(value, TreeEntry):
            return value
        if isinstance(value, Mapping):
            return cls(
                type=value.get("type") or "",
                hash=value.get("hash") or "",
                name=value.get("name") or "",
            )
        raise TypeError(f"Expected TreeEntry or mapping, got {type(value).__name__}")

    def validate(self) -> None:
        if not self.type:
            raise ValidationError("type", "tree entry type is required")
        if self.type not in ENTRY_TYPES:
            raise ValidationError("type", "tree entry type must be 'blob' or 'tree'")
        if not self.hash:
            raise ValidationError("hash", "tree entry hash is required")
        if not is_object_id(self.hash):
            raise ValidationError("hash", f"malformed object id {self.hash!r}")
        if not self.name or not self.name.strip():
            raise ValidationError("name", "tree entry name is required")
        if "\n" in self.name or "\r" in self.name:
            raise ValidationError("name", f"line break in entry name {self.name!r}")


def serialize_tree(entries: Iterable[TreeEntry]) -> bytes:
    """Canonical bytes for a set of entries. Input order is irrelevant."""
    lines = [
        f"{e.type} {e.hash} {e.name}\n" for e in sorted(entries, key=lambda e: e.name)
    ]
    return "".join(lines).encode("utf-8")


def parse_tree(data: bytes) -> list[TreeEntry]:
    """Inverse of ``serialize_tree``.

    Raises:
        ValidationError: If ``data`` is not a well-formed tree.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("tree", "not valid UTF-8") from e
    if not text or not text.endswith("\n"):
        raise ValidationError("tree", "tree must be non-empty and newline-terminated")

    entries = []
    for line in text[:-1].split("\n"):
        parts = line.split(" ", 2)
        if len(parts) != 3:
            raise ValidationError("tree", f"malformed tree line {line!r}")
        entry = TreeEntry(type=parts[0], hash=parts[1], name=parts[2])
        entry.validate()
        entries.append(entry)
    return entries


class TreeBuilder:
    """Builds and reads tree objects through a ``ContentStore``."""

    def __init__(self, objects: ContentStore) -> None:
        self.objects = objects

    def build_tree(self, entries: Iterable["TreeEntry | Mapping[str, Any]"]) -> str:
        """Validate, serialize and store a tree. Returns its hash.

        Raises:
            ValidationError: If the list is empty, an entry is malformed,
                or two entries share a name.
        """
        coerced = [TreeEntry.coerce(e) for e in entries]
        if not coerced:
            raise ValidationError("entries", "tree must contain at least one entry")
        seen: set[str] = set()
        for entry in coerced:
            entry.validate()
            if entry.name in seen:
                raise ValidationError("name", f"duplicate entry name {entry.name!r}")
            seen.add(entry.name)
        return self.objects.put(serialize_tree(coerced))

    def read_tree(self, tree_hash: str) -> list[TreeEntry]:
        """Load a tree's entries, sorted by name.

        Raises:
            NotFound: If the object is missing or is not a tree.
        """
        data = self.objects.get(tree_hash)
        try:
            return parse_tree(data)
        except ValidationError as e:
            raise NotFound(f"Object {tree_hash} is not a tree") from e

    def build_tree_from_paths(self, pairs: Iterable[tuple[str, str]]) -> str:
        """Write nested trees for staged ``(file_path, content_hash)`` pairs.

        Paths are ``/``-separated. One tree object is written per
        directory; the root tree hash is returned.
        """
        root: dict[str, Any] = {}
        for path, content_hash in pairs:
            parts = path.split("/")
            if any(p in ("", ".", "..") for p in parts):
                raise ValidationError("path", f"invalid path {path!r}")
            dirpath, filename = parts[:-1], parts[-1]

            current = root
            for dirname in dirpath:
                current = current.setdefault(dirname, {})
                if not isinstance(current, dict):
                    raise ValidationError(
                        "path", f"{dirname!r} in {path!r} is both a file and a directory"
                    )
            if filename in current:
                raise ValidationError("path", f"{path!r} staged more than once or is a directory")
            current[filename] = content_hash

        def write_recursive(node: dict[str, Any]) -> str:
            entries = []
            for name, value in node.items():
                if isinstance(value, dict):
                    entries.append(TreeEntry("tree", write_recursive(value), name))
                else:
                    entries.append(TreeEntry("blob", value, name))
            return self.build_tree(entries)

        if not root:
            raise ValidationError("entries", "tree must contain at least one entry")
        return write_recursive(root)

    def flatten_tree(self, tree_hash: str, prefix: str = "") -> dict[str, str]:
        """Map every blob path reachable from a tree to its hash."""
        result: dict[str, str] = {}
        for entry in self.read_tree(tree_hash):
            path = prefix + entry.name
            if entry.type == "tree":
                result.update(self.flatten_tree(entry.hash, f"{path}/"))
            else:
                result[path] = entry.hash
        return result
