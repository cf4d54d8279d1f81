"""Repository layout and commit identity."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class PublishConfig:
    """Where documents and images live in the content repository.

    Attributes:
        branch: Branch whose head is read and swapped.
        content_dir: Directory holding ``<slug>.md`` documents.
        image_dir: Directory holding ``<slug>/<hash><ext>`` images.
        public_image_prefix: URL prefix images are served under.
        document_ext: Extension used when writing a document.
        author: Commit author name (used by local repositories).
        email: Commit author email.
    """

    branch: str = "main"
    content_dir: str = "content"
    image_dir: str = "images"
    public_image_prefix: str = "/images"
    document_ext: str = ".md"
    author: str = "blogstore"
    email: str = "blogstore@localhost"

    def document_path(self, slug: str, ext: str | None = None) -> str:
        return f"{self.content_dir.strip('/')}/{slug}{ext or self.document_ext}"

    def image_path(self, slug: str, filename: str) -> str:
        return f"{self.image_dir.strip('/')}/{slug}/{filename}"

    def public_image_path(self, slug: str, filename: str) -> str:
        return f"{self.public_image_prefix.rstrip('/')}/{slug}/{filename}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PublishConfig:
        """Build a config from ``BLOGSTORE_<FIELD>`` variables.

        Unset variables keep their defaults, e.g. ``BLOGSTORE_BRANCH=pages``
        only overrides :attr:`branch`.
        """
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            value = env.get(f"BLOGSTORE_{f.name.upper()}")
            if value:
                overrides[f.name] = value
        return cls(**overrides)
