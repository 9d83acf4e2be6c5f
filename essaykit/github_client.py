"""
HTTP client for the GitHub contents API.

Knows about raw files only: list a directory, read a file, create or update
a file with an optional version token, upload a binary asset. Caching and
document parsing live in essay_store.

Every call is a single attempt. Failures surface as essaykit errors:
404 on read means "absent" (None), anything else non-2xx is an ApiError.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Optional
from urllib.parse import quote, urlparse

import httpx

from .config import EssayKitConfig
from .errors import (
    ApiError,
    InvalidContentError,
    InvalidResponseError,
    InvalidURLError,
    NotConfiguredError,
    TransportError,
)
from .types import FileContent, RemoteFile, VersionToken, WriteResult, token_value

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

ACCEPT_JSON = "application/vnd.github.v3+json"
ACCEPT_RAW = "application/vnd.github.v3.raw"

_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class GitHubClient:
    """Async client for /repos/{owner}/{repo}/contents."""

    def __init__(
        self,
        config: EssayKitConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._api_url = config.github.api_url.rstrip("/")

        # Refuse non-HTTPS for remote APIs (token would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"GitHub API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect API credentials, or use localhost for local development."
                )

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if config.github.token:
            headers["Authorization"] = f"token {config.github.token}"

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _require_configured(self) -> None:
        if not self._config.is_configured:
            raise NotConfiguredError("GitHub token, owner and repo must be configured")

    def _contents_url(self, path: str, repo: Optional[str] = None) -> str:
        self._require_configured()
        owner = self._config.github.owner
        repo = repo or self._config.github.repo
        for name in (owner, repo):
            if not _NAME_RE.match(name):
                raise InvalidURLError(f"Invalid repository name: {name!r}")
        path = path.strip("/")
        segments = path.split("/")
        if not path or any(seg in ("", ".", "..") for seg in segments):
            raise InvalidURLError(f"Invalid content path: {path!r}")
        if any(ch in path for ch in "\x00?#"):
            raise InvalidURLError(f"Invalid content path: {path!r}")
        return f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        accept: str = ACCEPT_JSON,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        self._require_configured()
        try:
            resp = await self._client.request(
                method, url, params=params, json=json, headers={"Accept": accept},
            )
        except httpx.InvalidURL as e:
            raise InvalidURLError(str(e)) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out") from e
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        logger.debug("%s %s -> %d", method, url, resp.status_code)
        if not resp.is_success:
            raise ApiError(resp.status_code, _error_message(resp))
        return resp

    # -------------------------------------------------------------------------
    # File operations
    # -------------------------------------------------------------------------

    async def list_files(self, dir_path: str) -> list[RemoteFile]:
        """GET /contents/{dir}?ref={branch} -> directory entries."""
        resp = await self._request(
            "GET", self._contents_url(dir_path),
            params={"ref": self._config.github.branch},
        )
        data = _json(resp)
        if not isinstance(data, list):
            raise InvalidResponseError(f"Expected a directory listing for {dir_path}")

        files = []
        for entry in data:
            try:
                files.append(RemoteFile(
                    name=entry["name"],
                    path=entry["path"],
                    version=VersionToken(entry["sha"]),
                    size=int(entry.get("size", 0)),
                    kind=entry.get("type", "file"),
                    download_url=entry.get("download_url"),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidResponseError(f"Malformed listing entry in {dir_path}: {e}") from e
        return files

    async def read_file(self, path: str) -> Optional[FileContent]:
        """GET /contents/{path} (JSON) -> decoded content, or None if absent."""
        try:
            resp = await self._request(
                "GET", self._contents_url(path),
                params={"ref": self._config.github.branch},
            )
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise

        data = _json(resp)
        try:
            sha = data["sha"]
            encoded = data["content"]
            encoding = data.get("encoding", "base64")
        except (KeyError, TypeError) as e:
            raise InvalidResponseError(f"Malformed file response for {path}: {e}") from e
        if encoding != "base64":
            raise InvalidContentError(f"Unsupported encoding {encoding!r} for {path}")

        return FileContent(content=_decode_base64_text(encoded, path), version=VersionToken(sha))

    async def read_raw(self, path: str) -> Optional[str]:
        """GET /contents/{path} (raw) -> file text, or None if absent."""
        try:
            resp = await self._request(
                "GET", self._contents_url(path),
                accept=ACCEPT_RAW,
                params={"ref": self._config.github.branch},
            )
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise
        try:
            return resp.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidContentError(f"{path} is not UTF-8 text") from e

    async def create_or_update(
        self,
        path: str,
        content: str,
        message: str,
        version: Optional[VersionToken] = None,
    ) -> WriteResult:
        """PUT /contents/{path}.

        Without a version token the file is created; with one, the API
        rejects the write with 409 if the token no longer matches.
        """
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self._config.github.branch,
        }
        if version is not None:
            payload["sha"] = token_value(version)

        resp = await self._request("PUT", self._contents_url(path), json=payload)
        return _write_result(resp, path)

    async def upload_asset(
        self,
        data: bytes,
        dest_path: str,
        *,
        message: Optional[str] = None,
        repo: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> WriteResult:
        """PUT a binary file into the image repository. Never sends a sha."""
        repo = repo or self._config.images.repo
        if not repo:
            raise NotConfiguredError("Image repository is not configured")
        file_name = dest_path.rsplit("/", 1)[-1]
        payload = {
            "message": message or f"Upload image: {file_name}",
            "content": base64.b64encode(data).decode("ascii"),
            "branch": branch or self._config.images.branch,
        }
        resp = await self._request("PUT", self._contents_url(dest_path, repo=repo), json=payload)
        return _write_result(resp, dest_path)

    async def verify_token(self) -> str:
        """GET /user -> login name of the token's owner."""
        resp = await self._request("GET", "/user")
        data = _json(resp)
        try:
            return data["login"]
        except (KeyError, TypeError) as e:
            raise InvalidResponseError("Malformed /user response") from e


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or "Unknown error"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return "Unknown error"


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise InvalidResponseError(f"Response is not JSON: {e}") from e


def _decode_base64_text(encoded: str, path: str) -> str:
    # The API wraps base64 content at 60 columns
    try:
        raw = base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidContentError(f"Invalid base64 content for {path}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidContentError(f"{path} is not UTF-8 text") from e


def _write_result(resp: httpx.Response, path: str) -> WriteResult:
    data = _json(resp)
    try:
        info = data["content"]
        return WriteResult(
            path=info.get("path", path),
            version=VersionToken(info["sha"]),
            html_url=info.get("html_url", ""),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidResponseError(f"Malformed write response for {path}: {e}") from e
