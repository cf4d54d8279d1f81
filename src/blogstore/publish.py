"""Publishing and deleting documents as single atomic commits.

A publish creates every object it needs (image blobs, the document blob,
a tree, a commit) without touching the branch, then moves the branch with
one compare-and-swap. Readers see either the old head or the new one. If the
swap is rejected, the objects already created are simply unreferenced.
"""

from __future__ import annotations

import datetime as _dt
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import TypeVar

from .assets import AssetReference, LocalAsset, RemoteAsset
from .commit import commit_message, compose_commit, delete_message, swap_ref
from .config import PublishConfig
from .dedup import Deduplicator
from .exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    PublishInProgressError,
    ValidationError,
    step,
)
from .frontmatter import DATE_FORMAT, stringify
from .hashing import hash_asset
from .loader import DocumentLoader, check_identifier
from .models import CommitRef, Frontmatter, PublishDocument, PublishMode, PublishProgress
from .placeholders import find_placeholders, rewrite
from .remote import RemoteRepository, upload_blob
from .tree import ChangeSet, ObjectEntry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PublishProgress], None]

_T = TypeVar("_T")
_R = TypeVar("_R")


class Publisher:
    """Publishes documents to a :class:`~blogstore.remote.RemoteRepository`.

    One publisher runs one operation at a time; a second call while one is
    in flight raises :class:`PublishInProgressError`.

    Args:
        remote: Where objects are created and the branch lives.
        config: Repository layout (defaults to :class:`PublishConfig`).
        max_workers: Threads used to hash and upload images. 1 keeps
            everything on the calling thread.
    """

    def __init__(self, remote: RemoteRepository, config: PublishConfig | None = None, *, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._remote = remote
        self._config = config or PublishConfig()
        self._max_workers = max_workers
        self._loader = DocumentLoader(remote, self._config)
        self._in_flight = threading.Lock()

    def __repr__(self) -> str:
        return f"Publisher({self._remote!r}, branch={self._config.branch!r})"

    @property
    def config(self) -> PublishConfig:
        return self._config

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    @contextmanager
    def _single_flight(self):
        if not self._in_flight.acquire(blocking=False):
            raise PublishInProgressError("Another operation is already running on this publisher")
        try:
            yield
        finally:
            self._in_flight.release()

    # --- publish ---

    def publish(
        self,
        doc: PublishDocument,
        assets: Iterable[AssetReference] = (),
        *,
        cover: AssetReference | None = None,
        mode: PublishMode = PublishMode.CREATE,
        original_slug: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> CommitRef:
        """Upload *doc* and its images and commit them in one step.

        Args:
            doc: The document; its ``body`` may contain ``local-image:<id>``
                placeholders for entries of *assets*.
            assets: Inline images referenced from the body.
            cover: Cover image, remote or local. May also appear in *assets*.
            mode: ``CREATE`` or ``EDIT``; selects the commit message and, for
                ``EDIT``, removes the previous file if its path changed.
            original_slug: Slug the document had when it was loaded for editing.
            progress: Called with a :class:`PublishProgress` per stage.

        Returns:
            The :class:`CommitRef` of the new branch head.

        Raises:
            ValidationError: Missing slug/title or conflicting asset ids.
            EncodingError: An asset could not be read.
            TransportError: The remote failed; the branch is untouched.
            ConcurrentModificationError: The branch moved during the publish.
            PublishInProgressError: Another operation is running.
        """
        with self._single_flight():
            return self._publish(doc, list(assets), cover, mode, original_slug, _reporter(progress))

    def _publish(
        self,
        doc: PublishDocument,
        assets: list[AssetReference],
        cover: AssetReference | None,
        mode: PublishMode,
        original_slug: str | None,
        report: Callable[..., None],
    ) -> CommitRef:
        remote = self._remote
        config = self._config

        with step("validate"):
            doc.validate()
            if original_slug is not None:
                check_identifier(original_slug)
            local_assets = _order_local_assets(doc.body, assets, cover)

        parent_id, base_tree_id = self._sync(report)

        changes = ChangeSet()
        with step("upload"):
            public_paths = self._upload_assets(doc.slug, local_assets, changes, report)
        body = doc.body
        for asset in local_assets:
            body = rewrite(body, asset.id, public_paths[asset.id])

        with step("document"):
            report("document", 0, 1)
            meta = Frontmatter(
                title=doc.title,
                description=doc.summary,
                pub_date=doc.date or _dt.datetime.now().strftime(DATE_FORMAT),
                image=_cover_path(cover, public_paths),
                draft=doc.hidden,
                tags=list(doc.tags),
                categories=list(doc.categories),
                badge=doc.badge or None,
            )
            doc_path = config.document_path(doc.slug)
            changes.add_entry(upload_blob(remote, stringify(meta, body).encode("utf-8"), doc_path))
            if mode is PublishMode.EDIT:
                self._drop_previous(original_slug or doc.slug, doc_path, parent_id, changes)
            report("document", 1, 1)

        ref = self._commit_changes(changes, commit_message(mode, doc.title), parent_id, base_tree_id, report)
        logger.info("Published %s (%d images) as %s", doc_path, len(local_assets), ref.new_commit_id[:7])
        return ref

    def _sync(self, report: Callable[..., None]) -> tuple[str, str]:
        with step("sync"):
            report("sync", 0, 1)
            parent_id = self._remote.get_ref(self._config.branch)
            base_tree_id = self._remote.commit_tree(parent_id)
            report("sync", 1, 1)
        logger.debug("Branch %s is at %s", self._config.branch, parent_id[:7])
        return parent_id, base_tree_id

    def _upload_assets(
        self,
        slug: str,
        assets: Sequence[LocalAsset],
        changes: ChangeSet,
        report: Callable[..., None],
    ) -> dict[str, str]:
        """Upload distinct image contents; return asset id -> public path."""
        config = self._config
        dedup = Deduplicator()
        hashes = self._map(hash_asset, assets)

        # The first asset carrying a hash fixes its filename, so identical
        # bytes resolve to one path whatever their extensions.
        filenames: dict[str, str] = {}
        for asset, content_hash in zip(assets, hashes):
            filenames.setdefault(content_hash, f"{content_hash}{asset.extension}")

        total = len(filenames)
        uploaded = 0
        counter = threading.Lock()
        report("upload", 0, total)

        def upload(item: tuple[LocalAsset, str]) -> ObjectEntry | None:
            nonlocal uploaded
            asset, content_hash = item
            if dedup.check_and_insert(content_hash):
                return None
            path = config.image_path(slug, filenames[content_hash])
            entry = upload_blob(self._remote, asset.read_bytes(), path)
            with counter:
                uploaded += 1
                done = uploaded
            report("upload", done, total)
            return entry

        for entry in self._map(upload, list(zip(assets, hashes))):
            if entry is not None:
                changes.add_entry(entry)

        return {
            asset.id: config.public_image_path(slug, filenames[content_hash])
            for asset, content_hash in zip(assets, hashes)
        }

    def _map(self, fn: Callable[[_T], _R], items: Sequence[_T]) -> list[_R]:
        if self._max_workers == 1 or len(items) < 2:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            return list(pool.map(fn, items))

    def _drop_previous(self, identifier: str, new_path: str, parent_id: str, changes: ChangeSet) -> None:
        """Remove the document's old file when an edit moves it."""
        found = self._loader.locate(identifier, ref=parent_id)
        if found is not None and found[0] != new_path:
            logger.info("Renaming %s to %s", found[0], new_path)
            changes.remove(found[0])

    # --- delete ---

    def delete_post(self, identifier: str, *, progress: ProgressCallback | None = None) -> CommitRef:
        """Remove the document for *identifier* in one commit.

        Raises:
            ValidationError: *identifier* is empty or not a single path segment.
            NotFoundError: No such document at the current head.
            TransportError: The remote failed; the branch is untouched.
            ConcurrentModificationError: The branch moved during the delete.
            PublishInProgressError: Another operation is running.
        """
        with self._single_flight():
            report = _reporter(progress)
            with step("validate"):
                check_identifier(identifier)

            parent_id, base_tree_id = self._sync(report)

            with step("locate"):
                found = self._loader.locate(identifier, ref=parent_id)
                if found is None:
                    raise NotFoundError(f"Document {identifier!r} not found")
            changes = ChangeSet()
            changes.remove(found[0])

            ref = self._commit_changes(changes, delete_message(identifier), parent_id, base_tree_id, report)
            logger.info("Deleted %s in %s", found[0], ref.new_commit_id[:7])
            return ref

    # --- shared tail: tree, commit, swap ---

    def _commit_changes(
        self,
        changes: ChangeSet,
        message: str,
        parent_id: str,
        base_tree_id: str,
        report: Callable[..., None],
    ) -> CommitRef:
        remote = self._remote
        branch = self._config.branch

        with step("tree"):
            report("tree", 0, 1)
            tree_id = remote.create_tree(changes.entries(), base_tree_id)
            report("tree", 1, 1)

        with step("commit"):
            report("commit", 0, 1)
            commit_id = compose_commit(remote, message, tree_id, parent_id)
            report("commit", 1, 1)

        with step("update"):
            report("update", 0, 1)
            try:
                swap_ref(remote, branch, commit_id, parent_id)
            except ConcurrentModificationError:
                logger.warning("Branch %s moved past %s; commit %s left unreferenced", branch, parent_id[:7], commit_id[:7])
                raise
            report("update", 1, 1)

        report("done", 1, 1)
        return CommitRef(branch=branch, parent_id=parent_id, tree_id=tree_id, new_commit_id=commit_id)


def _reporter(progress: ProgressCallback | None) -> Callable[..., None]:
    def report(stage: str, done: int = 0, total: int = 0) -> None:
        if progress is not None:
            progress(PublishProgress(stage, done, total))
    return report


def _order_local_assets(
    body: str,
    assets: Sequence[AssetReference],
    cover: AssetReference | None,
) -> list[LocalAsset]:
    """Return local assets: inline ones in body order, then a local cover."""
    by_id: dict[str, LocalAsset] = {}
    inline: list[LocalAsset] = []
    candidates = list(assets) + ([cover] if cover is not None else [])
    for index, asset in enumerate(candidates):
        if isinstance(asset, RemoteAsset):
            continue
        if not isinstance(asset, LocalAsset):
            raise TypeError(f"Expected RemoteAsset or LocalAsset, got {type(asset).__name__}")
        previous = by_id.get(asset.id)
        if previous is not None:
            if previous is not asset:
                raise ValidationError(f"Asset id {asset.id!r} is used by more than one image")
            continue
        by_id[asset.id] = asset
        if index < len(assets):
            inline.append(asset)

    position = {asset_id: i for i, asset_id in enumerate(find_placeholders(body))}
    inline.sort(key=lambda a: position.get(a.id, len(position)))
    if isinstance(cover, LocalAsset) and cover not in inline:
        inline.append(cover)
    return inline


def _cover_path(cover: AssetReference | None, public_paths: dict[str, str]) -> str | None:
    if cover is None:
        return None
    if isinstance(cover, RemoteAsset):
        return cover.url
    if isinstance(cover, LocalAsset):
        return public_paths[cover.id]
    raise TypeError(f"Expected RemoteAsset or LocalAsset, got {type(cover).__name__}")


def retry_publish(
    publisher: Publisher,
    doc: PublishDocument,
    assets: Iterable[AssetReference] = (),
    *,
    retries: int = 5,
    **kwargs,
) -> CommitRef:
    """Publish, re-running the whole operation on concurrent modification.

    Every attempt starts again from a fresh branch head. Uses exponential
    backoff with jitter (base 10ms, factor 2x, cap 200ms).

    Raises ``ConcurrentModificationError`` if all attempts are exhausted.
    """
    import random
    import time

    assets = list(assets)
    for attempt in range(retries):
        try:
            return publisher.publish(doc, assets, **kwargs)
        except ConcurrentModificationError:
            if attempt == retries - 1:
                raise
            delay = min(0.01 * (2 ** attempt), 0.2)
            time.sleep(random.uniform(0, delay))
    raise ValueError("retries must be at least 1")
