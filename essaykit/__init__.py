"""
essaykit

Read, edit and publish Markdown essays stored in a GitHub repository.

Quick Start:
    import asyncio
    from essaykit import EssayStore, GitHubClient, load_or_create_config

    async def main():
        config = load_or_create_config()
        async with GitHubClient(config) as client:
            store = EssayStore(client, config)
            for doc in await store.list():
                print(doc.published_at, doc.title or doc.preview)

    asyncio.run(main())

CLI Usage:
    essaykit list
    essaykit show 2025-12-27-143000.md
    essaykit edit 2025-12-27-143000.md body.md
    essaykit publish draft.md --kind essay

Environment Variables:
    ESSAYKIT_HOME          - Config directory (default ~/.essaykit)
    ESSAYKIT_GITHUB_TOKEN  - GitHub token (falls back to GITHUB_TOKEN)
    ESSAYKIT_GITHUB_OWNER / ESSAYKIT_GITHUB_REPO / ESSAYKIT_GITHUB_BRANCH
"""

from .assets import AssetUploader
from .config import EssayKitConfig, load_or_create_config
from .errors import (
    ApiError,
    ConflictError,
    EssayKitError,
    NotConfiguredError,
    NotFoundError,
)
from .essay_store import EssayStore, StoreState
from .frontmatter import parse
from .github_client import GitHubClient
from .paths import generate_path
from .types import Document, DocumentKind, VersionToken

__version__ = "0.1.0"
__all__ = [
    "ApiError",
    "AssetUploader",
    "ConflictError",
    "Document",
    "DocumentKind",
    "EssayKitConfig",
    "EssayKitError",
    "EssayStore",
    "GitHubClient",
    "NotConfiguredError",
    "NotFoundError",
    "StoreState",
    "VersionToken",
    "generate_path",
    "load_or_create_config",
    "parse",
]
