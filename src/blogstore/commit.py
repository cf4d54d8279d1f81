"""Commit composition and the compare-and-swap ref update."""

from __future__ import annotations

import logging

from .models import PublishMode
from .remote import RemoteRepository

logger = logging.getLogger(__name__)


def commit_message(mode: PublishMode, title: str) -> str:
    verb = "update" if mode is PublishMode.EDIT else "publish"
    return f'feat(blog): {verb} post "{title}"'


def delete_message(identifier: str) -> str:
    return f'feat(blog): delete post "{identifier}"'


def compose_commit(remote: RemoteRepository, message: str, tree_id: str, parent_id: str) -> str:
    """Create a commit on top of *parent_id*; nothing references it yet."""
    commit_id = remote.create_commit(message, tree_id, [parent_id])
    logger.debug("Created commit %s (tree %s, parent %s)", commit_id[:7], tree_id[:7], parent_id[:7])
    return commit_id


def swap_ref(remote: RemoteRepository, branch: str, new_id: str, expected_id: str) -> None:
    """Point *branch* at *new_id*, provided it still points at *expected_id*.

    Raises:
        ConcurrentModificationError: If the branch has moved.
    """
    remote.update_ref(branch, new_id, expected_id)
    logger.debug("Moved %s from %s to %s", branch, expected_id[:7], new_id[:7])
