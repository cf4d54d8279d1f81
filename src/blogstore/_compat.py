"""Thin object/ref wrappers around dulwich.

Gives the local repository backend a small, stable surface: hex-string
object ids, blob/tree/commit accessors, a TreeBuilder, and ref updates that
also append to the reflog.
"""

from __future__ import annotations

import os
import time as _time

from dulwich.objects import Blob as _DBlob
from dulwich.objects import Commit as _DCommit
from dulwich.objects import Tree as _DTree
from dulwich.protocol import ZERO_SHA as _ZERO_SHA
from dulwich.reflog import format_reflog_line as _format_reflog_line
from dulwich.repo import Repo as _DRepo

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GIT_OBJECT_COMMIT = 1    # dulwich Commit.type_num
GIT_OBJECT_TREE = 2      # dulwich Tree.type_num

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class Signature:
    """Commit author/committer identity."""

    def __init__(self, name: str, email: str):
        self.name = name
        self.email = email
        self._identity = f"{name} <{email}>".encode()


class GitError(Exception):
    """Low-level repository error (missing entry, bad object type)."""

# ---------------------------------------------------------------------------
# Wrapped objects
# ---------------------------------------------------------------------------

class _TreeEntry:
    """A tree entry: .name, .id (hex str), .filemode."""

    __slots__ = ("name", "id", "filemode")

    def __init__(self, name: str, oid: str, filemode: int):
        self.name = name
        self.id = oid
        self.filemode = filemode


class _WrappedObject:
    def __init__(self, dulwich_obj):
        self._obj = dulwich_obj

    @property
    def id(self) -> str:
        return self._obj.id.decode()

    @property
    def type(self) -> int:
        return self._obj.type_num


class _WrappedBlob(_WrappedObject):
    @property
    def data(self) -> bytes:
        return self._obj.data


class _WrappedTree(_WrappedObject):
    def __getitem__(self, name: str) -> _TreeEntry:
        mode, sha = self._obj[name.encode()]
        return _TreeEntry(name, sha.decode(), mode)

    def __iter__(self):
        for entry in self._obj.iteritems():
            yield _TreeEntry(entry.path.decode(), entry.sha.decode(), entry.mode)

    def __len__(self) -> int:
        return len(self._obj)


class _WrappedCommit(_WrappedObject):
    @property
    def tree_id(self) -> str:
        return self._obj.tree.decode()

    @property
    def message(self) -> str:
        return self._obj.message.decode()

    @property
    def parent_ids(self) -> list[str]:
        return [p.decode() for p in self._obj.parents]


def _wrap(dulwich_obj) -> _WrappedObject:
    if isinstance(dulwich_obj, _DBlob):
        return _WrappedBlob(dulwich_obj)
    if isinstance(dulwich_obj, _DTree):
        return _WrappedTree(dulwich_obj)
    if isinstance(dulwich_obj, _DCommit):
        return _WrappedCommit(dulwich_obj)
    return _WrappedObject(dulwich_obj)

# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def _write_reflog_entry(repo_path: str, ref_name: bytes, old_sha: bytes, new_sha: bytes, committer: bytes, message: bytes):
    # refs/heads/main -> logs/refs/heads/main
    reflog_path = os.path.join(repo_path, "logs", ref_name.decode())
    os.makedirs(os.path.dirname(reflog_path), exist_ok=True)
    line = _format_reflog_line(old_sha, new_sha, committer, int(_time.time()), 0, message)
    with open(reflog_path, "ab") as f:
        f.write(line + b"\n")


class _Reference:
    def __init__(self, dulwich_repo: _DRepo, ref_name: bytes):
        self._repo = dulwich_repo
        self._name = ref_name

    @property
    def target(self) -> str:
        return self._repo.refs[self._name].decode()

    def set_target(self, oid: str, *, committer: bytes, message: bytes = b"update ref") -> None:
        try:
            old_sha = self._repo.refs[self._name]
        except KeyError:
            old_sha = _ZERO_SHA
        self._repo.refs[self._name] = oid.encode()
        _write_reflog_entry(self._repo.path, self._name, old_sha, oid.encode(), committer, message)


class _References:
    def __init__(self, dulwich_repo: _DRepo):
        self._repo = dulwich_repo

    def __getitem__(self, name: str) -> _Reference:
        ref_bytes = name.encode()
        if ref_bytes not in self._repo.refs:
            raise KeyError(name)
        return _Reference(self._repo, ref_bytes)

    def __contains__(self, name: str) -> bool:
        return name.encode() in self._repo.refs

# ---------------------------------------------------------------------------
# TreeBuilder
# ---------------------------------------------------------------------------

class TreeBuilder:
    """Mutable copy of one tree level; :meth:`write` stores a new tree."""

    def __init__(self, dulwich_repo: _DRepo, base_tree: _WrappedTree | None = None):
        self._repo = dulwich_repo
        self._entries: dict[bytes, tuple[int, bytes]] = {}
        if base_tree is not None:
            for entry in base_tree._obj.iteritems():
                self._entries[entry.path] = (entry.mode, entry.sha)

    def insert(self, name: str, oid: str, mode: int) -> None:
        self._entries[name.encode()] = (mode, oid.encode())

    def remove(self, name: str) -> None:
        key = name.encode()
        if key not in self._entries:
            raise GitError(f"Entry not found: {name}")
        del self._entries[key]

    def write(self) -> str:
        tree = _DTree()
        for name_bytes, (mode, sha) in sorted(self._entries.items()):
            tree.add(name_bytes, mode, sha)
        self._repo.object_store.add_object(tree)
        return tree.id.decode()

# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class Repository:
    """A bare dulwich repository addressed with hex-string object ids."""

    def __init__(self, path_or_repo: str | _DRepo):
        if isinstance(path_or_repo, _DRepo):
            self._repo = path_or_repo
        else:
            self._repo = _DRepo(path_or_repo)

    @property
    def path(self) -> str:
        return self._repo.path

    def __getitem__(self, oid: str) -> _WrappedObject:
        return _wrap(self._repo.object_store[oid.encode()])

    def __contains__(self, oid: str) -> bool:
        return oid.encode() in self._repo.object_store

    def create_blob(self, data: bytes) -> str:
        blob = _DBlob.from_string(data)
        self._repo.object_store.add_object(blob)
        return blob.id.decode()

    def create_commit(
        self,
        author: Signature,
        committer: Signature,
        message: str,
        tree_oid: str,
        parent_oids: list[str],
    ) -> str:
        c = _DCommit()
        c.tree = tree_oid.encode()
        c.parents = [p.encode() for p in parent_oids]
        c.author = author._identity
        c.committer = committer._identity
        now = int(_time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode()
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        self._repo.object_store.add_object(c)
        return c.id.decode()

    def TreeBuilder(self, tree: _WrappedTree | None = None) -> TreeBuilder:
        return TreeBuilder(self._repo, tree)

    @property
    def references(self) -> _References:
        return _References(self._repo)

    def create_branch(self, branch: str, oid: str, *, committer: bytes) -> None:
        ref_bytes = f"refs/heads/{branch}".encode()
        self._repo.refs[ref_bytes] = oid.encode()
        _write_reflog_entry(self._repo.path, ref_bytes, _ZERO_SHA, oid.encode(), committer, b"create branch")

    def set_head_branch(self, branch: str) -> None:
        self._repo.refs.set_symbolic_ref(b"HEAD", f"refs/heads/{branch}".encode())


def init_repository(path: str) -> Repository:
    """Create a new bare repository at *path*."""
    return Repository(_DRepo.init_bare(path, mkdir=True))
