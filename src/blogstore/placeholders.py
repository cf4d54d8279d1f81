"""Placeholder tokens for local images embedded in markdown bodies.

The editor inserts ``![alt](local-image:<id>)`` for an image that has not
been uploaded yet. At publish time each token is replaced by the image's
public path.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

PLACEHOLDER_PREFIX = "local-image:"

_TOKEN_RE = re.compile(r"\(" + re.escape(PLACEHOLDER_PREFIX) + r"([^)\s]+)\)")


def placeholder(asset_id: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{asset_id}"


def rewrite(body: str, asset_id: str, public_path: str) -> str:
    """Replace every ``(local-image:<asset_id>)`` in *body* with ``(public_path)``."""
    return body.replace(f"({placeholder(asset_id)})", f"({public_path})")


def find_placeholders(body: str) -> list[str]:
    """Return placeholder ids in order of first appearance."""
    ids: list[str] = []
    for m in _TOKEN_RE.finditer(body):
        if m.group(1) not in ids:
            ids.append(m.group(1))
    return ids


def unresolved(body: str, asset_ids: Iterable[str]) -> list[str]:
    """Return the ids from *asset_ids* whose token still appears in *body*."""
    return [i for i in asset_ids if f"({placeholder(i)})" in body]
