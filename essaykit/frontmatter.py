"""
Frontmatter parsing for essay files.

An essay file is Markdown with an optional leading header block:

    ---
    pubDate: 2025-12-27 12:00
    title: "Hello"
    ---

    Body text...

Only the publish date and the title are recovered from the header, by
pattern search; every other key survives untouched in Document.raw_content.
header_fields() offers a YAML view for display and is never used for parsing.

published_at is resolved by an ordered list of strategies (header field,
file name, current time); the first one that yields a value wins.
"""

import logging
import re
from datetime import datetime
from typing import Optional, Sequence

from .errors import ParseFailure
from .types import DateSource, Document, VersionToken

logger = logging.getLogger(__name__)

HEADER_DELIM = "---"

# Leading header block, optionally followed by blank lines
_HEADER_RE = re.compile(r"^---\s*\n([\s\S]*?)\n---\s*\n?")

_HEADER_DATE_RE = re.compile(
    r"""^[ \t]*(?:pubDate|publishedAt|published_at|date)[ \t]*:[ \t]*["']?"""
    r"""(\d{4}-\d{2}-\d{2}(?:[ \t]*[ T][ \t]*\d{2}:\d{2}(?::\d{2})?)?)["']?""",
    re.MULTILINE,
)
_HEADER_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")

# 2025-12-27.md, 2025-12-27-143000.md, 2025-12-27-slug-143000.md
_FILENAME_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-(.*))?$")
_TIME_SEGMENT_RE = re.compile(r"^\d{6}$")

_TITLE_RE = re.compile(r"^[ \t]*title[ \t]*:(.*)$", re.MULTILINE)
_HEADING_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)


def split_header(raw_content: str) -> tuple[str, str, str]:
    """
    Split raw file text into (header_block, header_text, body).

    header_block is the verbatim matched region including delimiters and
    trailing blank lines; header_text is what sits between the delimiters.
    Without a header both are empty and body is the stripped input.
    """
    m = _HEADER_RE.match(raw_content)
    if not m:
        return "", "", raw_content.strip()
    return m.group(0), m.group(1), raw_content[m.end():].strip()


def merge_body(raw_content: str, new_body: str) -> str:
    """Replace the body of raw_content, keeping its header byte-for-byte."""
    header_block, _, _ = split_header(raw_content)
    if not header_block:
        return new_body
    if not header_block.endswith("\n"):
        header_block += "\n"
    return header_block + new_body


def build_header(published_at: datetime, title: Optional[str] = None) -> str:
    """Header block for a newly created document."""
    lines = [HEADER_DELIM]
    if title:
        lines.append(f'title: "{title}"')
    lines.append(f"pubDate: {published_at.strftime('%Y-%m-%d %H:%M')}")
    lines.append(HEADER_DELIM)
    return "\n".join(lines) + "\n\n"


def header_fields(raw_content: str) -> dict:
    """
    Best-effort structured view of the header, for display only.

    Returns an empty dict when there is no header or it is not valid YAML.
    """
    _, header_text, _ = split_header(raw_content)
    if not header_text.strip():
        return {}
    import yaml
    try:
        data = yaml.safe_load(header_text)
    except yaml.YAMLError as e:
        logger.debug("Header is not valid YAML: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# published_at strategies
# ---------------------------------------------------------------------------

class HeaderField:
    """Date from a pubDate-like key in the header."""

    source = DateSource.HEADER

    def extract(self, header_text: str, doc_id: str, now: datetime) -> Optional[datetime]:
        m = _HEADER_DATE_RE.search(header_text)
        if not m:
            return None
        value = re.sub(r"[ \t]*[ T][ \t]*", " ", m.group(1).strip(), count=1)
        for fmt in _HEADER_DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        return None


class FilenamePattern:
    """Date from a YYYY-MM-DD[-slug][-HHMMSS] file name."""

    source = DateSource.FILENAME

    def extract(self, header_text: str, doc_id: str, now: datetime) -> Optional[datetime]:
        stem = doc_id.rsplit("/", 1)[-1]
        if "." in stem:
            stem = stem.rsplit(".", 1)[0]
        m = _FILENAME_DATE_RE.match(stem)
        if not m:
            return None
        try:
            day = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

        rest = m.group(4)
        if not rest:
            return day
        segments = rest.split("-")
        for candidate in (segments[0], segments[-1]):
            if _TIME_SEGMENT_RE.match(candidate):
                try:
                    return day.replace(
                        hour=int(candidate[0:2]),
                        minute=int(candidate[2:4]),
                        second=int(candidate[4:6]),
                    )
                except ValueError:
                    break
        return day


class CurrentTime:
    """Last resort: the current time. Keeps the parser total."""

    source = DateSource.NOW

    def extract(self, header_text: str, doc_id: str, now: datetime) -> Optional[datetime]:
        return now


DATE_STRATEGIES = (HeaderField(), FilenamePattern(), CurrentTime())


def resolve_published_at(
    header_text: str,
    doc_id: str,
    now: Optional[datetime] = None,
    *,
    strategies: Sequence = DATE_STRATEGIES,
    strict: bool = False,
) -> tuple[datetime, DateSource]:
    """
    Run the date strategies in order and return (published_at, source).

    With strict=True the current-time fallback is refused and a document
    without a recoverable date raises ParseFailure.
    """
    now = now or datetime.now()
    for strategy in strategies:
        if strict and strategy.source is DateSource.NOW:
            continue
        value = strategy.extract(header_text, doc_id, now)
        if value is not None:
            if strategy.source is DateSource.NOW:
                logger.warning("No date in header or file name of %s; using current time", doc_id)
            return value, strategy.source
    raise ParseFailure(f"No publish date found for {doc_id}")


def resolve_title(header_text: str, body: str) -> Optional[str]:
    """Title from the header, else the first top-level heading, else None."""
    m = _TITLE_RE.search(header_text)
    if m:
        title = m.group(1).strip().strip("\"'").strip()
        if title:
            return title
    m = _HEADING_RE.search(body)
    if m:
        return m.group(1).strip()
    return None


def parse(
    raw_content: str,
    id: str,
    version: Optional[VersionToken] = None,
    *,
    now: Optional[datetime] = None,
    strict: bool = False,
) -> Document:
    """
    Parse raw file text into a Document.

    Args:
        raw_content: Full file text, header included
        id: Storage file name (also used for the file-name date fallback)
        version: Remote version token, if the file is persisted
        now: Clock value for the current-time fallback
        strict: Raise ParseFailure instead of falling back to now

    The result always satisfies parse(raw, id).raw_content == raw.
    """
    _, header_text, body = split_header(raw_content)
    published_at, source = resolve_published_at(header_text, id, now, strict=strict)
    return Document(
        id=id,
        published_at=published_at,
        body=body,
        raw_content=raw_content,
        title=resolve_title(header_text, body),
        version=version,
        date_source=source,
    )
