"""Value types shared by the publish and load paths."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from .exceptions import ValidationError


class PublishMode(enum.Enum):
    CREATE = "create"
    EDIT = "edit"


@dataclass
class PublishDocument:
    """A document as the author edits it.

    ``body`` is markdown that may still contain ``local-image:<id>``
    placeholders; they are resolved at publish time.
    """

    slug: str
    title: str
    body: str = ""
    tags: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    date: str = ""
    summary: str = ""
    hidden: bool = False
    badge: str | None = None

    def validate(self) -> None:
        """Raise :class:`ValidationError` unless the document can be published."""
        if not self.slug or not self.slug.strip():
            raise ValidationError("Document slug is required")
        if not self.title or not self.title.strip():
            raise ValidationError("Document title is required")
        if self.slug in (".", "..") or "/" in self.slug or "\\" in self.slug:
            raise ValidationError(f"Invalid slug {self.slug!r}: must be a single path segment")


@dataclass
class Frontmatter:
    """The metadata block written ahead of a document body."""

    title: str = ""
    description: str = ""
    pub_date: str = ""
    image: str | None = None
    draft: bool = False
    tags: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    badge: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommitRef:
    """Result of a successful publish or delete."""

    branch: str
    parent_id: str
    tree_id: str
    new_commit_id: str


@dataclass
class LoadedDocument:
    document: PublishDocument
    cover_path: str | None
    path: str


class PublishProgress(NamedTuple):
    """A progress event: *stage* name and ``done``/``total`` counters."""

    stage: str
    done: int
    total: int
