"""
Storage path generation for new documents and uploaded assets.

Paths are derived from content and a timestamp. The functions are pure given
`now`; they do not guarantee uniqueness. A collision on write is caught by
the remote API through optimistic concurrency.
"""

import random
import re
from datetime import datetime
from typing import Optional

from .types import DocumentKind

ESSAYS_DIR = "src/content/essays"
POSTS_DIR = "src/content/posts"
PHOTOS_DIR = "src/content/photos"

ESSAY_SLUG_LENGTH = 4

_HEADER_BLOCK_RE = re.compile(r"^---[\s\S]*?---\n*")
_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKDOWN_PUNCT_RE = re.compile(r"[#*`_~\->|/]")
_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_CHAR_RE = re.compile(r"[一-龥a-zA-Z]")
_POST_STRIP_RE = re.compile(r"[^\w\s一-龥-]")


def essay_slug(body: str, length: int = ESSAY_SLUG_LENGTH) -> str:
    """First `length` CJK or ASCII letters of the body's plain text."""
    text = _HEADER_BLOCK_RE.sub("", body)
    text = _IMAGE_RE.sub("", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _MARKDOWN_PUNCT_RE.sub("", text)
    text = _WHITESPACE_RE.sub("", text)
    chars = [ch for ch in text if _SLUG_CHAR_RE.match(ch)]
    return "".join(chars[:length])


def post_slug(title: str) -> str:
    """Lowercased, hyphenated title with punctuation removed."""
    slug = _POST_STRIP_RE.sub("", title.strip() or "untitled")
    slug = _WHITESPACE_RE.sub("-", slug)
    return slug.lower()


def generate_path(
    kind: DocumentKind,
    title: str,
    body: str,
    now: datetime,
    *,
    essays_dir: str = ESSAYS_DIR,
    posts_dir: str = POSTS_DIR,
    photos_dir: str = PHOTOS_DIR,
) -> str:
    """
    Repository path for a new document.

    essay:   <essays_dir>/<Y>-<m>-<d>-[<slug>-]<HHMMSS>.md
    post:    <posts_dir>/<title-slug>-<HHMMSS>.md
    gallery: <photos_dir>/photo-<Y>-<m>-<d>-<epoch seconds>.json
    """
    kind = DocumentKind(kind)
    essays_dir, posts_dir, photos_dir = (
        d.rstrip("/") for d in (essays_dir, posts_dir, photos_dir)
    )
    date_prefix = now.strftime("%Y-%m-%d")
    timestamp = now.strftime("%H%M%S")

    if kind is DocumentKind.POST:
        return f"{posts_dir}/{post_slug(title)}-{timestamp}.md"

    if kind is DocumentKind.GALLERY:
        return f"{photos_dir}/photo-{date_prefix}-{now.timestamp()}.json"

    slug = essay_slug(body)
    if not slug:
        return f"{essays_dir}/{date_prefix}-{timestamp}.md"
    return f"{essays_dir}/{date_prefix}-{slug}-{timestamp}.md"


def generate_asset_name(extension: str, now: datetime, rng: Optional[random.Random] = None) -> str:
    """img-<epoch ms>-<4 random digits>.<ext>"""
    rng = rng or random
    millis = int(now.timestamp() * 1000)
    return f"img-{millis}-{rng.randint(1000, 9999)}.{extension}"


def asset_path(image_path: str, file_name: str, now: datetime) -> str:
    """<image_path>/<YYYY>/<MM>/<file_name>"""
    prefix = image_path.strip("/")
    dated = f"{now.year}/{now.month:02d}/{file_name}"
    return f"{prefix}/{dated}" if prefix else dated
