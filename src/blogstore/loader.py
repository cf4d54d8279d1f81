"""Loading a published document back for editing."""

from __future__ import annotations

import logging
import posixpath

from .config import PublishConfig
from .exceptions import EncodingError, NotFoundError, ValidationError, step
from .frontmatter import format_date, parse
from .models import LoadedDocument, PublishDocument
from .remote import RemoteRepository

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = (".md", ".mdx")


class DocumentLoader:
    """Finds a document by identifier and parses it into a :class:`PublishDocument`."""

    def __init__(self, remote: RemoteRepository, config: PublishConfig | None = None):
        self._remote = remote
        self._config = config or PublishConfig()

    def locate(self, identifier: str, *, ref: str | None = None) -> tuple[str, bytes] | None:
        """Return ``(path, raw bytes)`` of the document, or None.

        Tries ``<id>.md`` and ``<id>.mdx`` under the content directory, then a
        case-insensitive suffix match over every file below it. When several
        files match, the lexicographically first path wins. *ref* defaults
        to the configured branch.

        Raises:
            ValidationError: If *identifier* is not a single path segment.
        """
        check_identifier(identifier)
        if ref is None:
            ref = self._config.branch
        for ext in DOCUMENT_EXTENSIONS:
            path = self._config.document_path(identifier, ext)
            data = self._remote.read_file(path, ref)
            if data is not None:
                return path, data

        suffixes = tuple(f"/{identifier}{ext}".lower() for ext in DOCUMENT_EXTENSIONS)
        candidates = sorted(
            p for p in self._remote.list_files_recursive(self._config.content_dir, ref)
            if p.lower().endswith(suffixes)
        )
        for path in candidates:
            data = self._remote.read_file(path, ref)
            if data is not None:
                logger.debug("Resolved %r to %s by case-insensitive search", identifier, path)
                return path, data
        return None

    def load(self, identifier: str, *, ref: str | None = None) -> LoadedDocument:
        """Load and parse the document for *identifier*.

        Raises:
            ValidationError: If *identifier* is not a single path segment.
            NotFoundError: If no matching file exists.
            EncodingError: If the file is not UTF-8 or its frontmatter is invalid.
            TransportError: If the remote cannot be read.
        """
        with step("load"):
            found = self.locate(identifier, ref=ref)
            if found is None:
                raise NotFoundError(f"Document {identifier!r} not found")
            path, data = found
            meta, body = parse(_decode(data, path))

        slug = posixpath.splitext(posixpath.basename(path))[0]
        document = PublishDocument(
            slug=slug,
            title=meta.title,
            body=body,
            tags=list(meta.tags),
            categories=list(meta.categories),
            date=format_date(meta.pub_date),
            summary=meta.description,
            hidden=meta.draft,
            badge=meta.badge,
        )
        return LoadedDocument(document=document, cover_path=meta.image, path=path)


def check_identifier(identifier: str) -> None:
    """Raise :class:`ValidationError` unless *identifier* names a single file stem."""
    if not identifier or not identifier.strip():
        raise ValidationError("Document identifier is required")
    if identifier in (".", "..") or "/" in identifier or "\\" in identifier:
        raise ValidationError(f"Invalid document identifier {identifier!r}")


def _decode(data: bytes, path: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(f"{path} is not valid UTF-8: {exc}") from exc
