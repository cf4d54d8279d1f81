"""Content hashing for uploaded assets."""

from __future__ import annotations

import hashlib

from .assets import LocalAsset


def hash_bytes(data: bytes) -> str:
    """Return the lowercase hex SHA-256 of *data*."""
    return hashlib.sha256(data).hexdigest()


def hash_asset(asset: LocalAsset) -> str:
    """Return the content hash of *asset*, computing and caching it once."""
    if asset.cached_hash is None:
        asset.cached_hash = hash_bytes(asset.read_bytes())
    return asset.cached_hash
