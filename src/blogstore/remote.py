"""The remote repository capability surface and its local implementation.

Publishing only needs a handful of Git object/ref primitives. They are
described by :class:`RemoteRepository`; :class:`LocalRemote` implements them
on a bare repository on disk, :class:`~blogstore.github.GitHubRemote` over
the GitHub REST API.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from dulwich.errors import NotGitRepository

from . import _compat as git
from ._lock import repo_lock
from .exceptions import ConcurrentModificationError, PublishError, TransportError
from .tree import (
    GIT_FILEMODE_BLOB,
    GIT_OBJECT_TREE,
    ObjectEntry,
    _normalize_path,
    _walk_to,
    read_blob_at_path,
    rebuild_tree,
    walk_files,
)

logger = logging.getLogger(__name__)

_SHA_RE = re.compile(r"^[0-9a-f]{40}$")


@runtime_checkable
class RemoteRepository(Protocol):
    """Git-compatible object/ref API consumed by the publisher and loader.

    ``ref`` arguments accept a branch name or a commit id; None means the
    remote's default branch.
    """

    def get_ref(self, branch: str) -> str:
        """Return the commit id the branch points at."""

    def commit_tree(self, commit_id: str) -> str:
        """Return the root tree id of a commit."""

    def create_blob(self, data: bytes) -> str:
        """Store *data* and return its object id."""

    def create_tree(self, entries: Sequence[ObjectEntry], base_tree_id: str | None) -> str:
        """Apply *entries* on top of *base_tree_id*; return the new tree id."""

    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str:
        """Create an unreferenced commit object."""

    def update_ref(self, branch: str, new_id: str, expected_id: str) -> None:
        """Move *branch* to *new_id* if it still points at *expected_id*.

        Raises:
            ConcurrentModificationError: If the branch has moved.
        """

    def read_file(self, path: str, ref: str | None = None) -> bytes | None:
        """Return file contents, or None if the path does not exist."""

    def list_files_recursive(self, directory: str, ref: str | None = None) -> list[str]:
        """Return repository-relative paths of all files below *directory*."""


def upload_blob(remote: RemoteRepository, data: bytes, path: str, mode: int = GIT_FILEMODE_BLOB) -> ObjectEntry:
    """Upload *data* and return the tree entry that places it at *path*."""
    object_id = remote.create_blob(data)
    logger.debug("Uploaded %d bytes for %s as %s", len(data), path, object_id[:7])
    return ObjectEntry(_normalize_path(path), mode, "blob", object_id)


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except PublishError:
        raise
    except (OSError, KeyError, ValueError, NotGitRepository) as exc:
        raise TransportError(f"{action} failed: {exc}") from exc


class LocalRemote:
    """A bare repository on disk exposing the :class:`RemoteRepository` surface."""

    def __init__(self, repo: git.Repository, *, branch: str = "main", author: str = "blogstore", email: str = "blogstore@localhost"):
        self._repo = repo
        self._branch = branch
        self._signature = git.Signature(author, email)

    def __repr__(self) -> str:
        return f"LocalRemote({self._repo.path!r})"

    @property
    def path(self) -> str:
        return self._repo.path

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        create: bool = True,
        branch: str = "main",
        author: str = "blogstore",
        email: str = "blogstore@localhost",
    ) -> LocalRemote:
        """Open or create a bare repository.

        Args:
            path: Path to the bare repository.
            create: If True (default), create the repo when it doesn't exist,
                    with an empty initial commit on *branch*.
                    If False, raise FileNotFoundError when missing.
            branch: Default branch.
            author: Author name for commits.
            email: Author email for commits.
        """
        path = Path(path)

        if path.exists():
            return cls(git.Repository(str(path)), branch=branch, author=author, email=email)

        if not create:
            raise FileNotFoundError(f"Repository not found: {path}")

        repo = git.init_repository(str(path))
        remote = cls(repo, branch=branch, author=author, email=email)
        sig = remote._signature
        tree_oid = repo.TreeBuilder().write()
        commit_oid = repo.create_commit(sig, sig, f"Initialize {branch}", tree_oid, [])
        repo.create_branch(branch, commit_oid, committer=sig._identity)
        repo.set_head_branch(branch)
        return remote

    def _resolve(self, ref: str | None) -> str:
        """Return the commit id for a branch name or commit id."""
        if ref is None:
            ref = self._branch
        if _SHA_RE.match(ref) and ref in self._repo:
            return ref
        return self.get_ref(ref)

    # --- RemoteRepository ---

    def get_ref(self, branch: str) -> str:
        with _translate_errors(f"Reading branch {branch!r}"):
            return self._repo.references[f"refs/heads/{branch}"].target

    def commit_tree(self, commit_id: str) -> str:
        with _translate_errors(f"Reading commit {commit_id[:7]}"):
            obj = self._repo[commit_id]
            if obj.type != git.GIT_OBJECT_COMMIT:
                raise ValueError(f"{commit_id} is not a commit")
            return obj.tree_id

    def create_blob(self, data: bytes) -> str:
        with _translate_errors("Creating blob"):
            return self._repo.create_blob(data)

    def create_tree(self, entries: Sequence[ObjectEntry], base_tree_id: str | None) -> str:
        writes: dict[str, tuple[str, int]] = {}
        removes: set[str] = set()
        for entry in entries:
            path = _normalize_path(entry.path)
            if entry.is_removal:
                writes.pop(path, None)
                removes.add(path)
            else:
                removes.discard(path)
                writes[path] = (entry.object_id, entry.mode)
        with _translate_errors("Creating tree"):
            return rebuild_tree(self._repo, base_tree_id, writes, removes)

    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str:
        with _translate_errors("Creating commit"):
            return self._repo.create_commit(self._signature, self._signature, message, tree_id, list(parents))

    def update_ref(self, branch: str, new_id: str, expected_id: str) -> None:
        ref_name = f"refs/heads/{branch}"
        with _translate_errors(f"Updating branch {branch!r}"):
            summary = self._repo[new_id].message.splitlines()[0]
            with repo_lock(self._repo.path):
                ref = self._repo.references[ref_name]
                if ref.target != expected_id:
                    raise ConcurrentModificationError(
                        f"Branch {branch!r} has advanced since {expected_id[:7]}"
                    )
                ref.set_target(new_id, committer=self._signature._identity, message=f"commit: {summary}".encode())

    def read_file(self, path: str, ref: str | None = None) -> bytes | None:
        with _translate_errors(f"Reading {path!r}"):
            tree_oid = self.commit_tree(self._resolve(ref))
            try:
                return read_blob_at_path(self._repo, tree_oid, path)
            except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
                return None

    def list_files_recursive(self, directory: str, ref: str | None = None) -> list[str]:
        with _translate_errors(f"Listing {directory!r}"):
            tree_oid = self.commit_tree(self._resolve(ref))
            directory = _normalize_path(directory)
            try:
                obj = _walk_to(self._repo, tree_oid, directory)
            except (FileNotFoundError, NotADirectoryError):
                return []
            if obj.type != GIT_OBJECT_TREE:
                return []
            return sorted(walk_files(self._repo, obj.id, directory))
