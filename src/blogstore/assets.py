"""Asset references: images attached to a document being published."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Union

from .exceptions import EncodingError

ByteSource = Union[bytes, str, "os.PathLike[str]", Callable[[], bytes]]


@dataclass(frozen=True)
class RemoteAsset:
    """An image already hosted elsewhere; only its URL is recorded."""

    id: str
    url: str


@dataclass(eq=False)
class LocalAsset:
    """An image picked by the author that still has to be uploaded.

    *source* is raw bytes, a filesystem path, or a zero-argument callable
    returning bytes. It is resolved at most once; :attr:`cached_hash` is
    filled in the first time the asset is hashed.
    """

    id: str
    source: ByteSource
    filename: str
    cached_hash: str | None = None
    _data: bytes | None = field(default=None, init=False, repr=False)

    @property
    def extension(self) -> str:
        """Lower-cased filename suffix including the dot, or ``""``."""
        return os.path.splitext(self.filename)[1].lower()

    def read_bytes(self) -> bytes:
        if self._data is None:
            self._data = _resolve_source(self.source, self.filename)
        return self._data


AssetReference = Union[RemoteAsset, LocalAsset]


def _resolve_source(source: ByteSource, filename: str) -> bytes:
    try:
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)
        if isinstance(source, (str, os.PathLike)):
            with open(source, "rb") as f:
                return f.read()
        if callable(source):
            data = source()
            if not isinstance(data, (bytes, bytearray, memoryview)):
                raise TypeError(f"source callable returned {type(data).__name__}, expected bytes")
            return bytes(data)
    except (OSError, TypeError) as exc:
        raise EncodingError(f"Cannot read asset {filename!r}: {exc}") from exc
    raise EncodingError(f"Unsupported source type for asset {filename!r}: {type(source).__name__}")
