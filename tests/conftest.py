"""
Shared pytest fixtures for essaykit tests.

Provides an in-memory GitHub client so store tests never touch the network,
and a controllable clock so cache windows can be crossed without sleeping.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from essaykit.config import EssayKitConfig, GitHubConfig, ImageConfig
from essaykit.errors import ApiError
from essaykit.types import FileContent, RemoteFile, VersionToken, WriteResult, token_value


ESSAYS_DIR = "src/content/essays"


class FakeClock:
    """Callable clock returning an aware UTC datetime; advance() moves it."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 12, 30, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeGitHubClient:
    """
    In-memory stand-in for GitHubClient.

    Files are keyed by repository path. Writes follow the contents API's
    optimistic concurrency: overwriting an existing file needs its current
    version token, otherwise ApiError(409) is raised.
    """

    def __init__(self, files: Optional[dict] = None, directory: str = ESSAYS_DIR):
        self.directory = directory
        self.files: dict[str, tuple[str, str]] = {}
        self._sha_counter = 0
        for name, content in (files or {}).items():
            self.put(name, content)

        self.list_calls = 0
        self.read_calls = 0
        self.writes: list[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.fail_paths: set[str] = set()
        self.list_gate: Optional[asyncio.Event] = None

    def _next_sha(self) -> str:
        self._sha_counter += 1
        return f"sha{self._sha_counter:04d}"

    def put(self, name: str, content: str) -> str:
        """Create or change a file behind the store's back. Returns its new sha."""
        sha = self._next_sha()
        self.files[f"{self.directory}/{name}"] = (content, sha)
        return sha

    def sha_of(self, name: str) -> str:
        return self.files[f"{self.directory}/{name}"][1]

    async def list_files(self, dir_path: str) -> list[RemoteFile]:
        self.list_calls += 1
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        prefix = dir_path.rstrip("/") + "/"
        return [
            RemoteFile(
                name=path[len(prefix):],
                path=path,
                version=VersionToken(sha),
                size=len(content),
                kind="file",
            )
            for path, (content, sha) in self.files.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    async def read_raw(self, path: str) -> Optional[str]:
        self.read_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if path in self.fail_paths:
            raise ApiError(500, "Server Error")
        entry = self.files.get(path)
        return entry[0] if entry else None

    async def read_file(self, path: str) -> Optional[FileContent]:
        self.read_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        entry = self.files.get(path)
        if entry is None:
            return None
        return FileContent(content=entry[0], version=VersionToken(entry[1]))

    async def create_or_update(self, path, content, message, version=None) -> WriteResult:
        self.writes.append((path, content, message, version))
        current = self.files.get(path)
        if current is not None and (version is None or token_value(version) != current[1]):
            raise ApiError(409, f"{path} does not match {token_value(version) if version else 'nothing'}")
        sha = self._next_sha()
        self.files[path] = (content, sha)
        return WriteResult(
            path=path,
            version=VersionToken(sha),
            html_url=f"https://github.com/alice/blog/blob/main/{path}",
        )


WINTER = '---\npublishedAt: 2025-12-27 12:00\ntitle: "Winter"\n---\n\nCold morning.\n'
LATER = "Later essay without a header.\n"
PHOTO = "---\npubDate: 2025-12-20 10:10\n---\n\n![sky](https://cdn.example.com/sky.jpg)\n"


@pytest.fixture
def sample_files() -> dict:
    """Three essays whose dates come from the header, the file name, and the header."""
    return {
        "2025-12-27-143000.md": WINTER,
        "2025-12-28-090000.md": LATER,
        "2025-12-20-101010.md": PHOTO,
    }


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the user's config directory and credentials."""
    for name in (
        "ESSAYKIT_GITHUB_TOKEN", "GITHUB_TOKEN",
        "ESSAYKIT_GITHUB_OWNER", "ESSAYKIT_GITHUB_REPO", "ESSAYKIT_GITHUB_BRANCH",
        "ESSAYKIT_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ESSAYKIT_HOME", str(tmp_path / "home"))


@pytest.fixture
def config(tmp_path) -> EssayKitConfig:
    """Fully configured EssayKitConfig rooted in a temp directory."""
    return EssayKitConfig(
        path=tmp_path / "config",
        github=GitHubConfig(owner="alice", repo="blog", token="ghp_test"),
        images=ImageConfig(repo="images"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client(sample_files) -> FakeGitHubClient:
    return FakeGitHubClient(sample_files)
