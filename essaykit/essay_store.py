"""
Document store for essays.

The only component callers talk to for document data. It combines the
GitHub contents client with the frontmatter parser and owns a two-tier
cache:

- in memory: the sorted document list plus the time it was fetched,
  considered fresh for `cache.memory_ttl` (5 minutes by default)
- on disk: a JSON snapshot rewritten after each successful refresh and
  used at construction to pre-seed memory if it is younger than
  `cache.snapshot_ttl` (24 hours by default)

At most one bulk refresh is in flight per store. Reads degrade to the
last good document list when the remote fails; writes never do.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .config import EssayKitConfig
from .errors import ApiError, ConflictError, EssayKitError, NotFoundError, ParseFailure
from .frontmatter import build_header, merge_body, parse, split_header
from .github_client import GitHubClient
from .paths import generate_path
from .types import (
    DateSource,
    Document,
    DocumentKind,
    PublishResult,
    RemoteFile,
    VersionToken,
    parse_utc_timestamp,
    token_value,
    utc_now,
)

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSION = ".md"


class StoreState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"    # last refresh failed, serving previous documents
    FAILED = "failed"  # last refresh failed with nothing cached


@dataclass(frozen=True)
class CacheEntry:
    """Documents sorted newest first, and when they were fetched."""
    documents: tuple[Document, ...] = ()
    fetched_at: Optional[datetime] = None
    from_snapshot: bool = False


def _sort_newest_first(documents) -> list[Document]:
    # Stable: ties keep listing order
    return sorted(documents, key=lambda d: d.published_at, reverse=True)


class EssayStore:
    """
    Essay collection backed by a GitHub repository directory.

    Args:
        client: GitHub contents client
        config: essaykit configuration (directories, cache windows)
        snapshot_path: Durable cache file; defaults to config.snapshot_path
        use_snapshot: False disables the durable tier entirely
        clock: Returns the current time as an aware UTC datetime
    """

    def __init__(
        self,
        client: GitHubClient,
        config: EssayKitConfig,
        *,
        snapshot_path: Optional[Path] = None,
        use_snapshot: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self._config = config
        self._clock = clock or utc_now
        self._snapshot_path = (snapshot_path or config.snapshot_path) if use_snapshot else None

        self._cache = CacheEntry()
        self._state = StoreState.EMPTY
        self._lock = asyncio.Lock()
        self._generation = 0  # bumped on every successful refresh

        self._load_snapshot()

    # -------------------------------------------------------------------------
    # Cache inspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def has_cached_data(self) -> bool:
        return bool(self._cache.documents)

    @property
    def is_cache_expired(self) -> bool:
        return not self._is_fresh()

    def cached_documents(self) -> list[Document]:
        """Current cache contents, without any network access."""
        return list(self._cache.documents)

    def _is_fresh(self) -> bool:
        entry = self._cache
        if not entry.documents or entry.fetched_at is None or entry.from_snapshot:
            return False
        age = (self._clock() - entry.fetched_at).total_seconds()
        return age < self._config.cache.memory_ttl

    def _local_now(self) -> datetime:
        """Wall-clock time in the local timezone, naive (as parsed dates are)."""
        return self._clock().astimezone().replace(tzinfo=None)

    def _path_for(self, doc_id: str) -> str:
        return f"{self._config.content.essays_dir.rstrip('/')}/{doc_id}"

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    async def list(self, force_refresh: bool = False) -> list[Document]:
        """
        All essays, newest first.

        Served from memory while fresh. Otherwise refreshed from the remote;
        if that fails and documents are cached, the cached list is returned.
        """
        if not force_refresh and self._is_fresh():
            logger.debug("Serving %d essays from memory", len(self._cache.documents))
            return list(self._cache.documents)

        if self._lock.locked() and self._cache.documents:
            logger.debug("Refresh in flight; serving cached essays")
            return list(self._cache.documents)

        generation = self._generation
        async with self._lock:
            if self._generation != generation and self._cache.documents:
                # Someone else refreshed while we waited
                return list(self._cache.documents)
            return await self._refresh()

    async def _refresh(self) -> list[Document]:
        previous_state = self._state
        self._state = StoreState.LOADING
        try:
            documents = await self._fetch_all()
        except EssayKitError as e:
            if self._cache.documents:
                logger.warning(
                    "Refresh failed (%s); serving %d cached essays",
                    e, len(self._cache.documents),
                )
                self._state = StoreState.STALE
                return list(self._cache.documents)
            self._state = StoreState.FAILED
            raise
        except asyncio.CancelledError:
            self._state = previous_state
            raise

        self._cache = CacheEntry(tuple(documents), self._clock())
        self._generation += 1
        self._state = StoreState.READY
        self._write_snapshot()
        logger.info("Loaded %d essays", len(documents))
        return list(documents)

    async def _fetch_all(self) -> list[Document]:
        files = await self._client.list_files(self._config.content.essays_dir)
        md_files = [f for f in files if f.kind == "file" and f.name.endswith(DOCUMENT_EXTENSION)]
        logger.debug("Found %d essay files", len(md_files))

        semaphore = asyncio.Semaphore(max(1, self._config.cache.max_concurrent_fetches))
        now = self._local_now()
        read_errors: list[EssayKitError] = []

        async def fetch(remote: RemoteFile) -> Optional[Document]:
            async with semaphore:
                try:
                    raw = await self._client.read_raw(remote.path)
                except EssayKitError as e:
                    logger.warning("Skipping %s: %s", remote.name, e)
                    read_errors.append(e)
                    return None
            if raw is None:
                logger.warning("Skipping %s: file disappeared", remote.name)
                return None
            try:
                return parse(raw, remote.name, remote.version, now=now)
            except ParseFailure as e:
                logger.warning("Skipping %s: %s", remote.name, e)
                return None

        results = await asyncio.gather(*(fetch(f) for f in md_files))
        documents = [d for d in results if d is not None]
        if md_files and not documents and read_errors:
            # Listing worked but no file could be read; treat as a failed refresh
            raise read_errors[-1]
        return _sort_newest_first(documents)

    async def get(self, doc_id: str) -> Document:
        """Fetch and parse one essay. Does not touch the cache."""
        file = await self._client.read_file(self._path_for(doc_id))
        if file is None:
            raise NotFoundError(f"Essay not found: {doc_id}")
        return parse(file.content, doc_id, file.version, now=self._local_now())

    # -------------------------------------------------------------------------
    # Write operations
    # -------------------------------------------------------------------------

    async def save(self, document: Document, new_body: str) -> Document:
        """
        Replace a document's body, keeping its header byte-for-byte.

        Uses the document's version token. If the remote file changed since
        that token was read, ConflictError is raised and the cache is left
        alone; reload the document with get() before retrying.
        """
        content = merge_body(document.raw_content, new_body)
        action = "Update" if document.is_persisted else "Add"
        message = f"{action} essay: {document.title or 'Untitled'}"

        result = await self._write(self._path_for(document.id), content, message, document.version)

        updated = parse(content, document.id, result.version, now=self._local_now())
        if updated.date_source is DateSource.NOW:
            updated = dataclasses.replace(
                updated, published_at=document.published_at, date_source=document.date_source,
            )
        self._replace_cached(updated)
        return updated

    async def publish(
        self,
        kind: DocumentKind,
        content: str,
        title: str = "",
    ) -> PublishResult:
        """
        Create a new document at a generated path.

        Markdown documents without a header get one with the publish time
        (and title). If a file already exists at the generated path it is
        updated with its current version token.
        """
        kind = DocumentKind(kind)
        now = self._local_now()
        content_dirs = self._config.content
        path = generate_path(
            kind, title, content, now,
            essays_dir=content_dirs.essays_dir,
            posts_dir=content_dirs.posts_dir,
            photos_dir=content_dirs.photos_dir,
        )
        if kind is not DocumentKind.GALLERY and not split_header(content)[0]:
            content = build_header(now, title or None) + content

        existing = await self._client.read_file(path)
        action = "Update" if existing else "Add"
        message = f"{action} {kind.value}: {title or 'Untitled'}"
        result = await self._write(path, content, message, existing.version if existing else None)

        if kind is DocumentKind.ESSAY:
            name = path.rsplit("/", 1)[-1]
            self._replace_cached(parse(content, name, result.version, now=now))

        logger.info("%s %s at %s", action, kind.value, result.path)
        return PublishResult(
            path=result.path,
            url=result.html_url,
            action=action.lower(),
            version=result.version,
        )

    async def _write(self, path: str, content: str, message: str, version: Optional[VersionToken]):
        try:
            return await self._client.create_or_update(path, content, message, version)
        except ApiError as e:
            if e.status_code == 409:
                logger.warning("Write conflict on %s: %s", path, e.message)
                raise ConflictError(e.message) from e
            raise

    def _replace_cached(self, document: Document) -> None:
        if self._cache.fetched_at is None:
            return  # nothing cached yet; the next list() fetches everything
        others = [d for d in self._cache.documents if d.id != document.id]
        documents = _sort_newest_first([document, *others])
        self._cache = dataclasses.replace(self._cache, documents=tuple(documents))
        self._write_snapshot()

    def clear_cache(self) -> None:
        """Empty the in-memory cache and delete the snapshot. Idempotent."""
        self._cache = CacheEntry()
        self._state = StoreState.EMPTY
        if self._snapshot_path is not None:
            try:
                self._snapshot_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not delete snapshot %s: %s", self._snapshot_path, e)
        logger.info("Cache cleared")

    # -------------------------------------------------------------------------
    # Durable snapshot
    # -------------------------------------------------------------------------

    def _load_snapshot(self) -> None:
        path = self._snapshot_path
        if path is None or not path.exists():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            fetched_at = parse_utc_timestamp(data["fetchedAt"])
            age = (self._clock() - fetched_at).total_seconds()
            if age >= self._config.cache.snapshot_ttl:
                logger.info("Snapshot %s expired (%.0fs old)", path, age)
                return
            documents = [_document_from_snapshot(d) for d in data["documents"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, e)
            return

        self._cache = CacheEntry(tuple(_sort_newest_first(documents)), fetched_at, from_snapshot=True)
        self._state = StoreState.READY
        logger.info("Loaded %d essays from snapshot", len(documents))

    def _write_snapshot(self) -> None:
        path = self._snapshot_path
        if path is None or self._cache.fetched_at is None:
            return
        data = {
            "documents": [_document_to_snapshot(d) for d in self._cache.documents],
            "fetchedAt": self._cache.fetched_at.isoformat(),
        }
        try:
            _atomic_write_text(path, json.dumps(data, ensure_ascii=False, indent=2))
        except OSError as e:
            logger.warning("Could not save snapshot %s: %s", path, e)


def _document_to_snapshot(doc: Document) -> dict:
    return {
        "id": doc.id,
        "title": doc.title,
        "publishedAt": doc.published_at.isoformat(),
        "body": doc.body,
        "rawContent": doc.raw_content,
        "concurrencyToken": token_value(doc.version) if doc.version else None,
    }


def _document_from_snapshot(entry: dict) -> Document:
    published_at = datetime.fromisoformat(entry["publishedAt"])
    if published_at.tzinfo is not None:
        published_at = published_at.astimezone().replace(tzinfo=None)
    token = entry.get("concurrencyToken")
    return Document(
        id=entry["id"],
        title=entry.get("title"),
        published_at=published_at,
        body=entry["body"],
        raw_content=entry["rawContent"],
        version=VersionToken(token) if token else None,
        date_source=DateSource.SNAPSHOT,
    )


def _atomic_write_text(path: Path, text: str) -> None:
    """Replace path's content in one step; readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(
        "w", dir=path.parent, prefix=path.name, suffix=".tmp",
        delete=False, encoding="utf-8",
    )
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
