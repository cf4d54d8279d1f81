"""GitHub Git Data API implementation of :class:`~blogstore.remote.RemoteRepository`.

Every call is a single HTTP request made with ``requests``; nothing is
retried here. Status codes are mapped onto the blogstore error taxonomy:

- 401/403 -> :class:`AuthError`
- 404 on reads -> absent (None / empty listing)
- 409/422 on a ref update -> :class:`ConcurrentModificationError`
- anything else non-2xx, or a connection failure -> :class:`TransportError`
- a 2xx body missing expected fields, or a truncated tree listing ->
  :class:`TransportError`
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Any, Sequence
from urllib.parse import quote

import requests

from .auth import Credentials, EnvCredentials
from .exceptions import AuthError, ConcurrentModificationError, TransportError
from .tree import ObjectEntry

logger = logging.getLogger(__name__)


class GitHubRemote:
    """A GitHub repository reached through ``api.github.com``.

    Reads work anonymously on public repositories when *credentials* has no
    token; writes always need one.

    Args:
        owner: Repository owner (user or organization).
        repo: Repository name.
        credentials: Token provider, or None for anonymous access.
        branch: Branch used when a read passes ``ref=None``.
        session: ``requests.Session`` to use (a new one by default).
        api_base: API root, for GitHub Enterprise.
        timeout: Per-request timeout in seconds.
    """

    API_BASE = "https://api.github.com"

    def __init__(
        self,
        owner: str,
        repo: str,
        credentials: Credentials | None = None,
        *,
        branch: str = "main",
        session: requests.Session | None = None,
        api_base: str | None = None,
        timeout: float = 30,
    ):
        self.owner = owner
        self.repo = repo
        self._credentials = credentials
        self._branch = branch
        self._session = session or requests.Session()
        self._api_base = (api_base or self.API_BASE).rstrip("/")
        self._timeout = timeout

    def __repr__(self) -> str:
        return f"GitHubRemote({self.owner}/{self.repo})"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **kwargs: Any) -> GitHubRemote:
        """Build from ``BLOGSTORE_GITHUB_OWNER``/``BLOGSTORE_GITHUB_REPO``.

        The token is read from ``GITHUB_TOKEN`` at request time.
        """
        env = os.environ if environ is None else environ
        try:
            owner = env["BLOGSTORE_GITHUB_OWNER"]
            repo = env["BLOGSTORE_GITHUB_REPO"]
        except KeyError as exc:
            raise ValueError(f"Missing environment variable {exc.args[0]}") from None
        kwargs.setdefault("branch", env.get("BLOGSTORE_BRANCH") or "main")
        kwargs.setdefault("credentials", EnvCredentials())
        return cls(owner, repo, **kwargs)

    # --- HTTP plumbing ---

    def _headers(self, *, write: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        creds = self._credentials
        if write:
            if creds is None:
                raise AuthError("Writing to GitHub requires a credential")
            headers["Authorization"] = f"Bearer {creds.get_token()}"
        elif creds is not None and creds.has_credential():
            headers["Authorization"] = f"Bearer {creds.get_token()}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        write: bool = False,
        allow_missing: bool = False,
        conflict_ok: bool = False,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._api_base}/repos/{self.owner}/{self.repo}/{path}"
        headers = self._headers(write=write)
        try:
            response = self._session.request(
                method, url, headers=headers, json=json, params=params, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"{method} {path} was rejected ({status}): {_error_message(response)}")
        if status == 404 and allow_missing:
            return None
        if status in (409, 422) and conflict_ok:
            raise ConcurrentModificationError(f"{method} {path} was refused ({status}): {_error_message(response)}")
        if status >= 400:
            raise TransportError(f"{method} {path} returned {status}: {_error_message(response)}")
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON") from exc

    # --- RemoteRepository ---

    def get_ref(self, branch: str) -> str:
        data = self._request("GET", f"git/ref/heads/{quote(branch)}")
        return _field(data, "object", "sha")

    def commit_tree(self, commit_id: str) -> str:
        data = self._request("GET", f"git/commits/{commit_id}")
        return _field(data, "tree", "sha")

    def create_blob(self, data: bytes) -> str:
        payload = {"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"}
        return _field(self._request("POST", "git/blobs", write=True, json=payload), "sha")

    def create_tree(self, entries: Sequence[ObjectEntry], base_tree_id: str | None) -> str:
        payload: dict[str, Any] = {
            "tree": [
                {"path": e.path, "mode": f"{e.mode:06o}", "type": e.kind, "sha": e.object_id}
                for e in entries
            ]
        }
        if base_tree_id is not None:
            payload["base_tree"] = base_tree_id
        return _field(self._request("POST", "git/trees", write=True, json=payload), "sha")

    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str:
        payload = {"message": message, "tree": tree_id, "parents": list(parents)}
        return _field(self._request("POST", "git/commits", write=True, json=payload), "sha")

    def update_ref(self, branch: str, new_id: str, expected_id: str) -> None:
        current = self.get_ref(branch)
        if current != expected_id:
            raise ConcurrentModificationError(f"Branch {branch!r} has advanced since {expected_id[:7]}")
        # force=False makes GitHub refuse anything but a fast-forward, so a
        # head that moves after the check above still gets rejected.
        self._request(
            "PATCH", f"git/refs/heads/{quote(branch)}", write=True, conflict_ok=True,
            json={"sha": new_id, "force": False},
        )
        logger.debug("Moved %s/%s %s to %s", self.owner, self.repo, branch, new_id[:7])

    def read_file(self, path: str, ref: str | None = None) -> bytes | None:
        data = self._request(
            "GET", f"contents/{quote(path)}", allow_missing=True,
            params={"ref": ref or self._branch},
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            return None
        if data.get("encoding") == "base64" and data.get("content"):
            return _b64decode(data["content"], path)
        # Files over 1 MB come back without inline content
        blob = self._request("GET", f"git/blobs/{_field(data, 'sha')}")
        return _b64decode(_field(blob, "content"), path)

    def list_files_recursive(self, directory: str, ref: str | None = None) -> list[str]:
        data = self._request(
            "GET", f"git/trees/{quote(ref or self._branch)}", allow_missing=True,
            params={"recursive": "1"},
        )
        if data is None:
            return []
        if not isinstance(data, dict):
            raise TransportError(f"Malformed tree listing for {self.owner}/{self.repo}")
        if data.get("truncated"):
            raise TransportError(f"Tree listing for {self.owner}/{self.repo} was truncated")
        prefix = directory.strip("/") + "/"
        try:
            return sorted(
                item["path"] for item in data.get("tree", [])
                if item.get("type") == "blob" and item["path"].startswith(prefix)
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise TransportError(f"Malformed tree listing: {exc!r}") from exc


def _field(data: Any, *keys: str) -> Any:
    """Return ``data[k1][k2]...``, or raise :class:`TransportError` if the payload lacks it."""
    try:
        for key in keys:
            data = data[key]
    except (KeyError, TypeError, IndexError) as exc:
        raise TransportError(f"Response is missing {'.'.join(keys)!r}") from exc
    return data


def _b64decode(content: str, path: str) -> bytes:
    try:
        return base64.b64decode(content)
    except (binascii.Error, TypeError) as exc:
        raise TransportError(f"Content of {path!r} is not valid base64") from exc


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("message", response.text)
    except ValueError:
        return response.text
