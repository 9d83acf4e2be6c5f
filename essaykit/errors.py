"""
Error types and error logging for essaykit.

The remote client raises these; the store decides which ones degrade to
cached data (reads) and which ones reach the caller (writes, conflicts).
The CLI logs full stack traces to a file while showing clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class EssayKitError(Exception):
    """Base class for all essaykit errors."""


class NotConfiguredError(EssayKitError):
    """No credential or repository target is set. Never retried."""


# Name used by the error taxonomy for missing configuration
ConfigurationMissing = NotConfiguredError


class InvalidURLError(EssayKitError):
    """A request URL could not be built from the configured repository/path."""


class TransportError(EssayKitError):
    """DNS, timeout or connection failure. Safe to retry with cache fallback."""


class ApiError(EssayKitError):
    """Non-2xx response from the remote file-store API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"GitHub API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class ConflictError(ApiError):
    """The version token was stale; reload the document before retrying."""

    def __init__(self, message: str = "version token is stale"):
        super().__init__(409, message)


class NotFoundError(EssayKitError):
    """A requested document does not exist in the store."""


class DecodeError(EssayKitError):
    """Malformed transport encoding or unexpected response shape."""


class InvalidResponseError(DecodeError):
    """Response body did not match the expected JSON schema."""


class InvalidContentError(DecodeError):
    """File content could not be decoded (base64 or UTF-8)."""


class ParseFailure(EssayKitError):
    """Document content did not yield a usable Document."""


class AssetError(EssayKitError):
    """An asset could not be prepared for upload."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting ESSAYKIT_HOME."""
    home = os.environ.get("ESSAYKIT_HOME")
    if home:
        return Path(home) / "essaykit-errors.log"
    return Path.home() / ".essaykit" / "essaykit-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # can't write the error log; don't crash over it
    return log_path
