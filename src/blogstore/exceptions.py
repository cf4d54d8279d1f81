"""Exceptions for blogstore."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class PublishError(Exception):
    """Base class for every failure surfaced by publish, delete and load.

    *step* names the pipeline stage that failed (``"sync"``, ``"upload"``,
    ``"commit"``, ...) so callers can tell a human what went wrong and
    decide whether a retry makes sense.
    """

    def __init__(self, message: str, *, step: str | None = None):
        super().__init__(message)
        self.step = step

    def __str__(self) -> str:
        msg = super().__str__()
        if self.step:
            return f"[{self.step}] {msg}"
        return msg


class ValidationError(PublishError):
    """A required document field is missing or malformed."""


class AuthError(PublishError):
    """No usable credential, or the remote rejected it."""


class NotFoundError(PublishError):
    """The requested document does not exist, even after the fallback search."""


class ConcurrentModificationError(PublishError):
    """Raised when the branch has advanced since the operation read its head.

    Objects created before the rejected update are unreferenced and harmless.
    Re-run the whole operation against a fresh head, or use
    :func:`~blogstore.retry_publish`.
    """


class TransportError(PublishError):
    """Any failure talking to the remote repository."""


class EncodingError(PublishError):
    """Hashing, content decoding or frontmatter (de)serialization failed."""


class PublishInProgressError(PublishError):
    """Another publish or delete is already running on this publisher."""


@contextmanager
def step(name: str) -> Iterator[None]:
    """Tag any :class:`PublishError` raised inside the block with *name*."""
    try:
        yield
    except PublishError as exc:
        if exc.step is None:
            exc.step = name
        raise
