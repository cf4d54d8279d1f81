"""Shared fixtures for blogstore tests."""

import pytest

from blogstore import LocalRemote, Publisher
from blogstore._compat import init_repository
from blogstore.tree import ChangeSet


def seed(remote, files, message="seed", branch="main"):
    """Commit *files* (path -> bytes, or None to delete) straight onto *branch*."""
    parent = remote.get_ref(branch)
    changes = ChangeSet()
    for path, data in files.items():
        if data is None:
            changes.remove(path)
        else:
            changes.add(path, remote.create_blob(data))
    tree = remote.create_tree(changes.entries(), remote.commit_tree(parent))
    commit = remote.create_commit(message, tree, [parent])
    remote.update_ref(branch, commit, parent)
    return commit


@pytest.fixture
def bare_repo(tmp_path):
    """Create a bare repository with no branches."""
    return init_repository(str(tmp_path / "bare.git"))


@pytest.fixture
def remote(tmp_path):
    """A local content repository with an empty 'main' branch."""
    return LocalRemote.open(tmp_path / "site.git")


@pytest.fixture
def seed_files(remote):
    def _seed(files, message="seed"):
        return seed(remote, files, message)
    return _seed


@pytest.fixture
def publisher(remote):
    return Publisher(remote)
