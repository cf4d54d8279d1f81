"""Tests for loading documents back for editing."""

import pytest

from blogstore import (
    DocumentLoader,
    EncodingError,
    NotFoundError,
    PublishConfig,
    PublishDocument,
    Publisher,
    TransportError,
    ValidationError,
)


POST = b"""---
title: Foo Post
description: About foo
pubDate: 2024-03-04T05:06
image: /images/foo/abc.png
draft: true
tags:
- one
- two
categories:
- misc
badge: hot
---

Body of foo
"""


@pytest.fixture
def loader(remote):
    return DocumentLoader(remote)


class TestLocate:
    def test_exact_md(self, loader, seed_files):
        seed_files({"content/foo.md": POST})
        assert loader.locate("foo") == ("content/foo.md", POST)

    def test_md_preferred_over_mdx(self, loader, seed_files):
        seed_files({"content/foo.md": b"md", "content/foo.mdx": b"mdx"})
        assert loader.locate("foo")[0] == "content/foo.md"

    def test_mdx_fallback(self, loader, seed_files):
        seed_files({"content/foo.mdx": b"mdx"})
        assert loader.locate("foo")[0] == "content/foo.mdx"

    def test_case_insensitive_fallback(self, loader, seed_files):
        seed_files({"content/foo.md": POST})
        assert loader.locate("Foo")[0] == "content/foo.md"

    def test_nested_fallback(self, loader, seed_files):
        seed_files({"content/2024/03/foo.mdx": b"x"})
        assert loader.locate("foo")[0] == "content/2024/03/foo.mdx"

    def test_lexicographic_first_match(self, loader, seed_files):
        seed_files({"content/2024/foo.md": b"b", "content/2023/FOO.md": b"a"})
        assert loader.locate("Foo") == ("content/2023/FOO.md", b"a")

    def test_suffix_must_be_whole_name(self, loader, seed_files):
        seed_files({"content/barfoo.md": b"x"})
        assert loader.locate("foo") is None

    def test_outside_content_dir_ignored(self, loader, seed_files):
        seed_files({"drafts/foo.md": b"x"})
        assert loader.locate("foo") is None

    def test_at_older_ref(self, loader, seed_files):
        first = seed_files({"content/foo.md": b"v1"})
        seed_files({"content/foo.md": None})
        assert loader.locate("foo") is None
        assert loader.locate("foo", ref=first) == ("content/foo.md", b"v1")

    def test_custom_content_dir(self, remote, seed_files):
        seed_files({"src/content/blog/foo.md": b"x"})
        loader = DocumentLoader(remote, PublishConfig(content_dir="src/content/blog"))
        assert loader.locate("foo")[0] == "src/content/blog/foo.md"


class TestLoad:
    def test_fields_mapped(self, loader, seed_files):
        seed_files({"content/foo.md": POST})
        loaded = loader.load("foo")
        doc = loaded.document
        assert doc.slug == "foo"
        assert doc.title == "Foo Post"
        assert doc.summary == "About foo"
        assert doc.date == "2024-03-04T05:06"
        assert doc.hidden is True
        assert doc.tags == ["one", "two"]
        assert doc.categories == ["misc"]
        assert doc.badge == "hot"
        assert doc.body == "Body of foo\n"
        assert loaded.cover_path == "/images/foo/abc.png"
        assert loaded.path == "content/foo.md"

    def test_defaults(self, loader, seed_files):
        seed_files({"content/bare.md": b"---\ntitle: Bare\n---\ntext"})
        doc = loader.load("bare").document
        assert doc.tags == []
        assert doc.categories == []
        assert doc.hidden is False
        assert doc.summary == ""
        assert doc.badge is None
        assert doc.date == ""

    def test_slug_from_found_file(self, loader, seed_files):
        seed_files({"content/foo.md": POST})
        assert loader.load("FOO").document.slug == "foo"

    def test_date_normalized(self, loader, seed_files):
        seed_files({"content/d.md": b"---\ntitle: D\npubDate: 2023-12-31\n---\n"})
        assert loader.load("d").document.date == "2023-12-31T00:00"

    def test_not_found(self, loader):
        with pytest.raises(NotFoundError) as exc_info:
            loader.load("missing")
        assert exc_info.value.step == "load"

    def test_not_utf8(self, loader, seed_files):
        seed_files({"content/bin.md": b"\xff\xfe\x00"})
        with pytest.raises(EncodingError):
            loader.load("bin")

    def test_listing_failure_propagates(self):
        class BrokenListing:
            def read_file(self, path, ref=None):
                return None

            def list_files_recursive(self, directory, ref=None):
                raise TransportError("listing failed")

        with pytest.raises(TransportError):
            DocumentLoader(BrokenListing()).load("foo")

    def test_reads_configured_branch(self, remote):
        remote._repo.create_branch("pages", remote.get_ref("main"), committer=b"t <t@t>")
        config = PublishConfig(branch="pages")
        Publisher(remote, config).publish(PublishDocument(slug="p", title="On pages", body="x"))

        loaded = DocumentLoader(remote, config).load("p")
        assert loaded.document.title == "On pages"
        assert remote.read_file("content/p.md", "main") is None

    @pytest.mark.parametrize("identifier", ["", "  ", "..", "../x", "a/b", "a\\b"])
    def test_invalid_identifier(self, identifier):
        class NoReads:
            def read_file(self, path, ref=None):
                raise AssertionError("read before validation")

            def list_files_recursive(self, directory, ref=None):
                raise AssertionError("read before validation")

        with pytest.raises(ValidationError) as exc_info:
            DocumentLoader(NoReads()).load(identifier)
        assert exc_info.value.step == "load"
