"""
Configuration management for essaykit.

The configuration is stored as a TOML file in the config directory
(ESSAYKIT_HOME or ~/.essaykit). It names the content repository, the
directories inside it, the image-hosting target and the cache windows.

The GitHub token is never written to the file; it is read from
ESSAYKIT_GITHUB_TOKEN (or GITHUB_TOKEN).
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tomli_w

from .paths import ESSAYS_DIR, PHOTOS_DIR, POSTS_DIR


CONFIG_FILENAME = "essaykit.toml"
CONFIG_VERSION = 1

DEFAULT_API_URL = "https://api.github.com"
SNAPSHOT_FILENAME = "essays_cache.json"

# Images above this size are compressed before upload (10 MB)
DEFAULT_COMPRESSION_THRESHOLD = 10 * 1024 * 1024

CDN_TEMPLATES = {
    "jsdelivr": "https://cdn.jsdelivr.net/gh/{owner}/{repo}@{branch}/{path}",
    "statically": "https://cdn.statically.io/gh/{owner}/{repo}/{branch}/{path}",
    "raw": "https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}",
}


@dataclass
class GitHubConfig:
    """Content repository target."""
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    api_url: str = DEFAULT_API_URL
    token: Optional[str] = field(default=None, repr=False)


@dataclass
class ContentConfig:
    """Directories inside the content repository."""
    essays_dir: str = ESSAYS_DIR
    posts_dir: str = POSTS_DIR
    photos_dir: str = PHOTOS_DIR


@dataclass
class ImageConfig:
    """Image-hosting repository and CDN."""
    repo: str = ""
    branch: str = "main"
    path: str = "images"
    cdn: str = "jsdelivr"
    compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD


@dataclass
class CacheConfig:
    """Cache windows, in seconds."""
    memory_ttl: float = 5 * 60
    snapshot_ttl: float = 24 * 60 * 60
    max_concurrent_fetches: int = 8


@dataclass
class EssayKitConfig:
    """Complete configuration."""
    path: Path
    version: int = CONFIG_VERSION
    github: GitHubConfig = field(default_factory=GitHubConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def snapshot_path(self) -> Path:
        """Path to the durable document cache."""
        return self.path / "cache" / SNAPSHOT_FILENAME

    @property
    def is_configured(self) -> bool:
        """True when a token and a repository target are set."""
        g = self.github
        return bool(g.token and g.owner and g.repo)

    @property
    def is_image_configured(self) -> bool:
        return self.is_configured and bool(self.images.repo)

    def image_cdn_url(self, path: str) -> str:
        """Public URL for an uploaded image, per the configured CDN."""
        template = CDN_TEMPLATES.get(self.images.cdn, CDN_TEMPLATES["jsdelivr"])
        return template.format(
            owner=self.github.owner,
            repo=self.images.repo,
            branch=self.images.branch,
            path=path.lstrip("/"),
        )


def get_config_dir() -> Path:
    """Config directory: ESSAYKIT_HOME, else ~/.essaykit."""
    home = os.environ.get("ESSAYKIT_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".essaykit"


def apply_env_overrides(config: EssayKitConfig) -> EssayKitConfig:
    """Fill the token and repository target from environment variables."""
    token = os.environ.get("ESSAYKIT_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN")
    if token:
        config.github.token = token
    for env, attr in (
        ("ESSAYKIT_GITHUB_OWNER", "owner"),
        ("ESSAYKIT_GITHUB_REPO", "repo"),
        ("ESSAYKIT_GITHUB_BRANCH", "branch"),
    ):
        value = os.environ.get(env)
        if value:
            setattr(config.github, attr, value)
    return config


def load_config(config_dir: Path) -> EssayKitConfig:
    """
    Load configuration from a config directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    version = data.get("essaykit", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    def section(cls, name: str):
        values = data.get(name, {})
        known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
        try:
            return cls(**known)
        except TypeError as e:
            raise ValueError(f"Invalid [{name}] section: {e}") from e

    github = section(GitHubConfig, "github")
    github.token = None  # tokens only come from the environment

    config = EssayKitConfig(
        path=config_dir,
        version=version,
        github=github,
        content=section(ContentConfig, "content"),
        images=section(ImageConfig, "images"),
        cache=section(CacheConfig, "cache"),
    )
    return apply_env_overrides(config)


def save_config(config: EssayKitConfig) -> None:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist. The token is not saved.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    g = config.github
    data = {
        "essaykit": {"version": config.version},
        "github": {"owner": g.owner, "repo": g.repo, "branch": g.branch, "api_url": g.api_url},
        "content": {
            "essays_dir": config.content.essays_dir,
            "posts_dir": config.content.posts_dir,
            "photos_dir": config.content.photos_dir,
        },
        "images": {
            "repo": config.images.repo,
            "branch": config.images.branch,
            "path": config.images.path,
            "cdn": config.images.cdn,
            "compression_threshold": config.images.compression_threshold,
        },
        "cache": {
            "memory_ttl": config.cache.memory_ttl,
            "snapshot_ttl": config.cache.snapshot_ttl,
            "max_concurrent_fetches": config.cache.max_concurrent_fetches,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(config_dir: Optional[Path] = None) -> EssayKitConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_dir = config_dir or get_config_dir()
    if (config_dir / CONFIG_FILENAME).exists():
        return load_config(config_dir)
    config = EssayKitConfig(path=config_dir)
    save_config(config)
    return apply_env_overrides(config)
