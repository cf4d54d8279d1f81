"""Tests for the GitHub REST transport (HTTP mocked)."""

import base64
from unittest import mock

import pytest
import requests

from blogstore import (
    AuthError,
    ConcurrentModificationError,
    GitHubRemote,
    RemoteRepository,
    TokenCredentials,
    TransportError,
)
from blogstore.tree import ChangeSet

SHA_A = "a" * 40
SHA_B = "b" * 40


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


@pytest.fixture
def gh(session):
    return GitHubRemote("owner", "site", TokenCredentials("tok"), session=session)


def _call(session, index=-1):
    args, kwargs = session.request.call_args_list[index]
    return args[0], args[1], kwargs


class TestReads:
    def test_get_ref(self, gh, session):
        session.request.return_value = FakeResponse(payload={"object": {"sha": SHA_A}})
        assert gh.get_ref("main") == SHA_A
        method, url, kwargs = _call(session)
        assert method == "GET"
        assert url == "https://api.github.com/repos/owner/site/git/ref/heads/main"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_commit_tree(self, gh, session):
        session.request.return_value = FakeResponse(payload={"tree": {"sha": SHA_B}})
        assert gh.commit_tree(SHA_A) == SHA_B

    def test_read_file(self, gh, session):
        content = base64.b64encode(b"hello").decode()
        session.request.return_value = FakeResponse(payload={"type": "file", "encoding": "base64", "content": content})
        assert gh.read_file("content/a.md") == b"hello"
        _, url, kwargs = _call(session)
        assert url.endswith("/contents/content/a.md")
        assert kwargs["params"] == {"ref": "main"}

    def test_read_large_file_via_blob(self, gh, session):
        session.request.side_effect = [
            FakeResponse(payload={"type": "file", "encoding": "none", "content": "", "sha": SHA_A}),
            FakeResponse(payload={"content": base64.b64encode(b"big").decode()}),
        ]
        assert gh.read_file("content/big.md", ref=SHA_B) == b"big"
        assert _call(session)[1].endswith(f"/git/blobs/{SHA_A}")

    def test_read_missing(self, gh, session):
        session.request.return_value = FakeResponse(404, {"message": "Not Found"})
        assert gh.read_file("content/none.md") is None

    def test_read_directory(self, gh, session):
        session.request.return_value = FakeResponse(payload=[{"type": "file"}])
        assert gh.read_file("content") is None

    def test_anonymous_read(self, session):
        gh = GitHubRemote("owner", "site", session=session)
        session.request.return_value = FakeResponse(payload={"object": {"sha": SHA_A}})
        gh.get_ref("main")
        assert "Authorization" not in _call(session)[2]["headers"]

    def test_list_files_recursive(self, gh, session):
        session.request.return_value = FakeResponse(payload={"tree": [
            {"path": "content", "type": "tree"},
            {"path": "content/b.md", "type": "blob"},
            {"path": "content/2024/a.mdx", "type": "blob"},
            {"path": "contentious.md", "type": "blob"},
            {"path": "images/x.png", "type": "blob"},
        ]})
        assert gh.list_files_recursive("content") == ["content/2024/a.mdx", "content/b.md"]
        _, url, kwargs = _call(session)
        assert url.endswith("/git/trees/main")
        assert kwargs["params"] == {"recursive": "1"}

    def test_list_missing_ref(self, gh, session):
        session.request.return_value = FakeResponse(404, {"message": "Not Found"})
        assert gh.list_files_recursive("content") == []


class TestWrites:
    def test_create_blob(self, gh, session):
        session.request.return_value = FakeResponse(201, {"sha": SHA_A})
        assert gh.create_blob(b"\x00\x01") == SHA_A
        method, url, kwargs = _call(session)
        assert method == "POST"
        assert url.endswith("/git/blobs")
        assert kwargs["json"] == {"content": base64.b64encode(b"\x00\x01").decode(), "encoding": "base64"}

    def test_write_needs_credentials(self, session):
        gh = GitHubRemote("owner", "site", session=session)
        with pytest.raises(AuthError):
            gh.create_blob(b"x")
        session.request.assert_not_called()

    def test_write_with_empty_token(self, session):
        gh = GitHubRemote("owner", "site", TokenCredentials(""), session=session)
        with pytest.raises(AuthError):
            gh.create_blob(b"x")

    def test_create_tree_payload(self, gh, session):
        session.request.return_value = FakeResponse(201, {"sha": SHA_B})
        cs = ChangeSet()
        cs.add("images/s/h.png", SHA_A)
        cs.remove("content/old.md")
        assert gh.create_tree(cs.entries(), SHA_A) == SHA_B
        payload = _call(session)[2]["json"]
        assert payload["base_tree"] == SHA_A
        assert payload["tree"] == [
            {"path": "content/old.md", "mode": "100644", "type": "blob", "sha": None},
            {"path": "images/s/h.png", "mode": "100644", "type": "blob", "sha": SHA_A},
        ]

    def test_create_commit(self, gh, session):
        session.request.return_value = FakeResponse(201, {"sha": SHA_B})
        assert gh.create_commit("msg", SHA_A, [SHA_A]) == SHA_B
        assert _call(session)[2]["json"] == {"message": "msg", "tree": SHA_A, "parents": [SHA_A]}

    def test_update_ref(self, gh, session):
        session.request.side_effect = [
            FakeResponse(payload={"object": {"sha": SHA_A}}),
            FakeResponse(payload={"object": {"sha": SHA_B}}),
        ]
        gh.update_ref("main", SHA_B, SHA_A)
        method, url, kwargs = _call(session)
        assert method == "PATCH"
        assert url.endswith("/git/refs/heads/main")
        assert kwargs["json"] == {"sha": SHA_B, "force": False}

    def test_update_ref_head_moved(self, gh, session):
        session.request.return_value = FakeResponse(payload={"object": {"sha": "c" * 40}})
        with pytest.raises(ConcurrentModificationError):
            gh.update_ref("main", SHA_B, SHA_A)
        assert session.request.call_count == 1

    def test_update_ref_not_fast_forward(self, gh, session):
        session.request.side_effect = [
            FakeResponse(payload={"object": {"sha": SHA_A}}),
            FakeResponse(422, {"message": "Update is not a fast forward"}),
        ]
        with pytest.raises(ConcurrentModificationError):
            gh.update_ref("main", SHA_B, SHA_A)


class TestErrors:
    def test_unauthorized(self, gh, session):
        session.request.return_value = FakeResponse(401, {"message": "Bad credentials"})
        with pytest.raises(AuthError, match="Bad credentials"):
            gh.get_ref("main")

    def test_server_error(self, gh, session):
        session.request.return_value = FakeResponse(502, None, text="bad gateway")
        with pytest.raises(TransportError, match="502"):
            gh.get_ref("main")

    def test_missing_ref_is_transport_error(self, gh, session):
        session.request.return_value = FakeResponse(404, {"message": "Not Found"})
        with pytest.raises(TransportError):
            gh.get_ref("nope")

    def test_connection_error(self, gh, session):
        session.request.side_effect = requests.ConnectionError("offline")
        with pytest.raises(TransportError, match="offline"):
            gh.create_blob(b"x")

    def test_conflict_outside_ref_update(self, gh, session):
        session.request.return_value = FakeResponse(409, {"message": "Git Repository is empty."})
        with pytest.raises(TransportError):
            gh.create_blob(b"x")

    @pytest.mark.parametrize("payload", [{}, {"object": None}, {"object": {}}, []])
    def test_malformed_ref_payload(self, gh, session, payload):
        session.request.return_value = FakeResponse(payload=payload)
        with pytest.raises(TransportError, match="object.sha"):
            gh.get_ref("main")

    def test_malformed_blob_payload(self, gh, session):
        session.request.return_value = FakeResponse(payload={"url": "x"})
        with pytest.raises(TransportError, match="sha"):
            gh.create_blob(b"x")

    def test_bad_base64_content(self, gh, session):
        session.request.return_value = FakeResponse(payload={"type": "file", "encoding": "base64", "content": "abc"})
        with pytest.raises(TransportError, match="base64"):
            gh.read_file("content/a.md")

    def test_truncated_listing(self, gh, session):
        session.request.return_value = FakeResponse(payload={
            "truncated": True,
            "tree": [{"path": "content/a.md", "type": "blob"}],
        })
        with pytest.raises(TransportError, match="truncated"):
            gh.list_files_recursive("content")

    def test_malformed_listing_entry(self, gh, session):
        session.request.return_value = FakeResponse(payload={"tree": [{"type": "blob"}]})
        with pytest.raises(TransportError):
            gh.list_files_recursive("content")


class TestConstruction:
    def test_satisfies_protocol(self, gh):
        assert isinstance(gh, RemoteRepository)

    def test_from_env(self):
        env = {"BLOGSTORE_GITHUB_OWNER": "me", "BLOGSTORE_GITHUB_REPO": "blog", "BLOGSTORE_BRANCH": "pages"}
        gh = GitHubRemote.from_env(env)
        assert (gh.owner, gh.repo) == ("me", "blog")
        assert gh._branch == "pages"

    def test_from_env_missing(self):
        with pytest.raises(ValueError, match="BLOGSTORE_GITHUB_REPO"):
            GitHubRemote.from_env({"BLOGSTORE_GITHUB_OWNER": "me"})

    def test_api_base(self, session):
        gh = GitHubRemote("o", "r", session=session, api_base="https://ghe.example/api/v3/")
        session.request.return_value = FakeResponse(payload={"object": {"sha": SHA_A}})
        gh.get_ref("main")
        assert _call(session)[1] == "https://ghe.example/api/v3/repos/o/r/git/ref/heads/main"
