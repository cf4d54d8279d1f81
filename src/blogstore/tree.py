"""Tree change-sets and the dulwich-side tree rebuild.

A :class:`ChangeSet` collects path -> object mappings (and removals) for one
commit. Remotes turn it into a new tree on top of a base tree; for local
repositories that is :func:`rebuild_tree`, which only rewrites the ancestor
chain of changed leaves.
"""

from __future__ import annotations

import os
from collections import defaultdict
from typing import Iterator, NamedTuple

from . import _compat as git

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_OBJECT_TREE = git.GIT_OBJECT_TREE


class ObjectEntry(NamedTuple):
    """One leaf of a tree change-set.

    ``object_id`` is None for a removal.
    """

    path: str
    mode: int
    kind: str
    object_id: str | None

    @property
    def is_removal(self) -> bool:
        return self.object_id is None


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a path: strip leading/trailing slashes, reject bad segments."""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    if not path:
        raise ValueError("Path must not be empty")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


class ChangeSet:
    """Accumulates additions and removals; the last operation on a path wins."""

    def __init__(self) -> None:
        self._entries: dict[str, ObjectEntry] = {}

    def add(self, path: str, object_id: str, mode: int = GIT_FILEMODE_BLOB) -> ObjectEntry:
        path = _normalize_path(path)
        entry = ObjectEntry(path, mode, "blob", object_id)
        self._entries[path] = entry
        return entry

    def add_entry(self, entry: ObjectEntry) -> ObjectEntry:
        if entry.is_removal:
            return self.remove(entry.path)
        return self.add(entry.path, entry.object_id, entry.mode)

    def remove(self, path: str) -> ObjectEntry:
        path = _normalize_path(path)
        entry = ObjectEntry(path, GIT_FILEMODE_BLOB, "blob", None)
        self._entries[path] = entry
        return entry

    def entries(self) -> list[ObjectEntry]:
        return [self._entries[p] for p in sorted(self._entries)]

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def rebuild_tree(
    repo: git.Repository,
    base_tree_oid: str | None,
    writes: dict[str, tuple[str, int]],
    removes: set[str],
) -> str:
    """Rebuild a tree with writes and removes applied.

    Only the ancestor chain from changed leaves to root is rebuilt.
    Sibling subtrees are shared by hash reference.

    Args:
        repo: The repository holding the objects.
        base_tree_oid: Id of the existing tree (or None for empty).
        writes: Mapping of normalized path -> (blob id, filemode).
        removes: Set of normalized paths to remove.

    Returns:
        Id of the new root tree.
    """
    sub_writes: dict[str, dict[str, tuple[str, int]]] = defaultdict(dict)
    leaf_writes: dict[str, tuple[str, int]] = {}
    sub_removes: dict[str, set[str]] = defaultdict(set)
    leaf_removes: set[str] = set()

    for path, value in writes.items():
        head, _, rest = path.partition("/")
        if rest:
            sub_writes[head][rest] = value
        else:
            leaf_writes[head] = value

    for path in removes:
        head, _, rest = path.partition("/")
        if rest:
            sub_removes[head].add(rest)
        else:
            leaf_removes.add(head)

    base_tree = repo[base_tree_oid] if base_tree_oid is not None else None
    tb = repo.TreeBuilder(base_tree)

    existing_subtrees: dict[str, str] = {}
    if base_tree is not None:
        for entry in base_tree:
            if entry.filemode == GIT_FILEMODE_TREE:
                existing_subtrees[entry.name] = entry.id

    for name, (blob_oid, mode) in leaf_writes.items():
        tb.insert(name, blob_oid, mode)

    # Removing a path that is not there is a no-op
    for name in leaf_removes:
        try:
            tb.remove(name)
        except git.GitError:
            pass

    for subdir in set(sub_writes) | set(sub_removes):
        existing_oid = existing_subtrees.get(subdir)
        if existing_oid is None and base_tree is not None:
            # A blob sitting where a directory is needed gets replaced
            try:
                base_tree[subdir]
                tb.remove(subdir)
            except KeyError:
                pass

        new_subtree_oid = rebuild_tree(
            repo,
            existing_oid,
            sub_writes.get(subdir, {}),
            sub_removes.get(subdir, set()),
        )

        if len(repo[new_subtree_oid]) == 0:
            try:
                tb.remove(subdir)
            except git.GitError:
                pass
        else:
            tb.insert(subdir, new_subtree_oid, GIT_FILEMODE_TREE)

    return tb.write()


def _walk_to(repo: git.Repository, tree_oid: str, path: str):
    """Walk tree to the object at the given path."""
    segments = path.split("/")
    obj = repo[tree_oid]
    for i, seg in enumerate(segments):
        if obj.type != GIT_OBJECT_TREE:
            raise NotADirectoryError("/".join(segments[:i]))
        try:
            entry = obj[seg]
        except KeyError:
            raise FileNotFoundError(path)
        obj = repo[entry.id]
    return obj


def read_blob_at_path(repo: git.Repository, tree_oid: str, path: str | os.PathLike[str]) -> bytes:
    """Read a blob at the given path in the tree."""
    path = _normalize_path(path)
    obj = _walk_to(repo, tree_oid, path)
    if obj.type == GIT_OBJECT_TREE:
        raise IsADirectoryError(path)
    return obj.data


def walk_files(repo: git.Repository, tree_oid: str, prefix: str = "") -> Iterator[str]:
    """Yield the full path of every non-tree entry below *tree_oid*."""
    for entry in repo[tree_oid]:
        path = f"{prefix}/{entry.name}" if prefix else entry.name
        if entry.filemode == GIT_FILEMODE_TREE:
            yield from walk_files(repo, entry.id, path)
        else:
            yield path
