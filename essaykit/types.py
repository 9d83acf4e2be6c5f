"""
Data types for essaykit.

Documents are immutable value objects: an update produces a new Document
that replaces the old one in the store's collection.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


# Markdown image ![alt](url) and link [text](url)
_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_RE = re.compile(r"\[(.*?)\]\(.*?\)")
_IMAGE_URL_RE = re.compile(r"!\[.*?\]\((.*?)\)")

PREVIEW_MAX_LENGTH = 100
IMAGE_ONLY_PREVIEW = "(image)"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored ISO timestamp to a timezone-aware UTC datetime.

    Accepts a trailing 'Z' and naive values (treated as UTC).
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class DocumentKind(str, Enum):
    """What a file in the content repository represents."""
    ESSAY = "essay"
    POST = "post"
    GALLERY = "gallery"


class DateSource(str, Enum):
    """Which extraction strategy produced a document's published_at."""
    HEADER = "header"
    FILENAME = "filename"
    NOW = "now"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class VersionToken:
    """
    Opaque version marker for a remote file (the blob SHA).

    Only the remote client reads the wrapped value when it builds a write
    request; everything else passes the token around unchanged.
    """
    _sha: str = field(repr=False)

    def __post_init__(self):
        if not self._sha:
            raise ValueError("Version token must be non-empty")

    def __repr__(self) -> str:
        return f"VersionToken({self._sha[:7]})"


def token_value(token: VersionToken) -> str:
    """Unwrap a token for serialization (request payloads, the snapshot file)."""
    return token._sha


@dataclass(frozen=True)
class RemoteFile:
    """Entry from a directory listing."""
    name: str
    path: str
    version: VersionToken
    size: int
    kind: str  # "file" or "dir"
    download_url: Optional[str] = None


@dataclass(frozen=True)
class FileContent:
    """Decoded content of a single remote file."""
    content: str
    version: VersionToken


@dataclass(frozen=True)
class WriteResult:
    """Result of a create-or-update request."""
    path: str
    version: VersionToken
    html_url: str


@dataclass(frozen=True)
class PublishResult:
    """Result of publishing a document."""
    path: str
    url: str
    action: str  # "add" or "update"
    version: VersionToken


@dataclass(frozen=True)
class ImageUploadResult:
    """Result of an image upload."""
    path: str
    url: str
    version: VersionToken


@dataclass(frozen=True)
class Document:
    """
    A single essay backed by one remote Markdown file.

    raw_content holds the full text including the header block, so header
    keys the parser does not understand survive a save round trip.
    """
    id: str
    published_at: datetime
    body: str
    raw_content: str
    title: Optional[str] = None
    version: Optional[VersionToken] = None
    date_source: DateSource = DateSource.HEADER

    @property
    def is_persisted(self) -> bool:
        return self.version is not None

    @property
    def header(self) -> str:
        """The verbatim header block (empty when the file has none)."""
        from .frontmatter import split_header
        return split_header(self.raw_content)[0]

    @property
    def preview(self) -> str:
        """Plain-text teaser: images removed, links reduced to their text."""
        text = _IMAGE_RE.sub("", self.body)
        text = _LINK_RE.sub(r"\1", text)
        lines = (line.strip() for line in text.splitlines())
        text = " ".join(line for line in lines if line).strip()
        if not text:
            return IMAGE_ONLY_PREVIEW
        if len(text) > PREVIEW_MAX_LENGTH:
            return text[:PREVIEW_MAX_LENGTH] + "..."
        return text

    @property
    def first_image_url(self) -> Optional[str]:
        m = _IMAGE_URL_RE.search(self.body)
        return m.group(1) if m else None

    @property
    def has_image(self) -> bool:
        return self.first_image_url is not None

    def to_dict(self) -> dict:
        """JSON-friendly view used by the CLI."""
        return {
            "id": self.id,
            "title": self.title,
            "published_at": self.published_at.isoformat(),
            "date_source": self.date_source.value,
            "persisted": self.is_persisted,
            "body": self.body,
        }
