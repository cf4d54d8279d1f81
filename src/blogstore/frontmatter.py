"""YAML frontmatter: ``---`` delimited metadata followed by the raw body."""

from __future__ import annotations

import datetime as _dt
import re
from typing import Any

import yaml

from .exceptions import EncodingError
from .models import Frontmatter

DATE_FORMAT = "%Y-%m-%dT%H:%M"

_BLOCK_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)

# YAML key -> Frontmatter attribute, in emit order
_KEYS = (
    ("title", "title"),
    ("description", "description"),
    ("pubDate", "pub_date"),
    ("image", "image"),
    ("draft", "draft"),
    ("tags", "tags"),
    ("categories", "categories"),
    ("badge", "badge"),
)
_OPTIONAL = {"image", "badge"}


def format_date(value: Any) -> str:
    """Render a date-ish value as ``YYYY-MM-DDTHH:MM``.

    Strings that do not parse as ISO 8601 are returned unchanged.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, _dt.datetime):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, _dt.date):
        return _dt.datetime(value.year, value.month, value.day).strftime(DATE_FORMAT)
    text = str(value).strip()
    try:
        parsed = _dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return parsed.strftime(DATE_FORMAT)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def to_mapping(meta: Frontmatter) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, attr in _KEYS:
        value = getattr(meta, attr)
        if key in _OPTIONAL and value in (None, ""):
            continue
        if key in ("tags", "categories"):
            value = list(value)
        data[key] = value
    for key, value in meta.extra.items():
        data.setdefault(key, value)
    return data


def from_mapping(data: dict[str, Any]) -> Frontmatter:
    known = {key for key, _ in _KEYS}
    pub_date = data.get("pubDate")
    return Frontmatter(
        title=str(data.get("title") or ""),
        description=str(data.get("description") or ""),
        pub_date=pub_date if isinstance(pub_date, str) else format_date(pub_date),
        image=data.get("image") or None,
        draft=bool(data.get("draft", False)),
        tags=_as_list(data.get("tags")),
        categories=_as_list(data.get("categories")),
        badge=data.get("badge") or None,
        extra={k: v for k, v in data.items() if k not in known},
    )


def stringify(meta: Frontmatter, body: str) -> str:
    """Serialize *meta* and *body* into document text."""
    try:
        block = yaml.safe_dump(to_mapping(meta), allow_unicode=True, sort_keys=False, default_flow_style=False)
    except yaml.YAMLError as exc:
        raise EncodingError(f"Cannot serialize frontmatter: {exc}") from exc
    return f"---\n{block}---\n\n{body}"


def parse(text: str) -> tuple[Frontmatter, str]:
    """Split document text into metadata and body.

    Text without a leading ``---`` block is all body.
    """
    m = _BLOCK_RE.match(text)
    if m is None:
        return Frontmatter(), text
    try:
        data = yaml.safe_load(m.group(1))
    except yaml.YAMLError as exc:
        raise EncodingError(f"Invalid frontmatter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise EncodingError(f"Frontmatter must be a mapping, got {type(data).__name__}")

    body = text[m.end():]
    # stringify separates the block from the body with one blank line
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return from_mapping(data), body
