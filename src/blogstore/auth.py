"""Credential providers for remotes that need a token."""

from __future__ import annotations

import os
from typing import Protocol, runtime_checkable

from .exceptions import AuthError


@runtime_checkable
class Credentials(Protocol):
    def get_token(self) -> str:
        """Return a token, or raise :class:`AuthError`."""

    def has_credential(self) -> bool:
        """True if :meth:`get_token` is expected to succeed."""


class TokenCredentials:
    """A fixed token."""

    def __init__(self, token: str | None):
        self._token = token

    def __repr__(self) -> str:
        return f"TokenCredentials(set={self.has_credential()})"

    def has_credential(self) -> bool:
        return bool(self._token)

    def get_token(self) -> str:
        if not self._token:
            raise AuthError("No token configured")
        return self._token


class EnvCredentials:
    """Reads the token from an environment variable on every call."""

    def __init__(self, var: str = "GITHUB_TOKEN"):
        self.var = var

    def __repr__(self) -> str:
        return f"EnvCredentials({self.var!r})"

    def has_credential(self) -> bool:
        return bool(os.environ.get(self.var))

    def get_token(self) -> str:
        token = os.environ.get(self.var)
        if not token:
            raise AuthError(f"Environment variable {self.var} is not set")
        return token
