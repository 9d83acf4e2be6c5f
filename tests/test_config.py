"""Tests for essaykit.config: TOML config file and environment overrides."""

import tomllib
from pathlib import Path

import pytest

from essaykit.config import (
    CONFIG_FILENAME,
    EssayKitConfig,
    GitHubConfig,
    ImageConfig,
    get_config_dir,
    load_config,
    load_or_create_config,
    save_config,
)


class TestConfigDir:
    def test_respects_essaykit_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESSAYKIT_HOME", str(tmp_path / "custom"))
        assert get_config_dir() == tmp_path / "custom"

    def test_default_is_home_dotdir(self, monkeypatch):
        monkeypatch.delenv("ESSAYKIT_HOME", raising=False)
        assert get_config_dir() == Path.home() / ".essaykit"


class TestLoadOrCreate:
    def test_creates_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.github.branch == "main"
        assert config.content.essays_dir == "src/content/essays"
        assert config.cache.memory_ttl == 300
        assert config.cache.snapshot_ttl == 86400
        assert not config.is_configured

    def test_round_trip(self, tmp_path):
        config = EssayKitConfig(
            path=tmp_path,
            github=GitHubConfig(owner="alice", repo="blog", branch="drafts"),
            images=ImageConfig(repo="pics", cdn="raw"),
        )
        config.cache.memory_ttl = 60
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.github.owner == "alice"
        assert loaded.github.branch == "drafts"
        assert loaded.images.repo == "pics"
        assert loaded.images.cdn == "raw"
        assert loaded.cache.memory_ttl == 60

    def test_token_never_written(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESSAYKIT_GITHUB_TOKEN", "ghp_secret")
        config = load_or_create_config(tmp_path)
        assert config.github.token == "ghp_secret"
        save_config(config)
        assert "ghp_secret" not in (tmp_path / CONFIG_FILENAME).read_text()

    def test_token_in_file_is_ignored(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            '[github]\nowner = "alice"\nrepo = "blog"\ntoken = "from-file"\n'
        )
        config = load_config(tmp_path)
        assert config.github.token is None
        assert not config.is_configured


class TestEnvironment:
    def test_env_overrides_file(self, tmp_path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text('[github]\nowner = "alice"\nrepo = "blog"\n')
        monkeypatch.setenv("ESSAYKIT_GITHUB_REPO", "essays")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_fallback")
        config = load_config(tmp_path)
        assert config.github.owner == "alice"
        assert config.github.repo == "essays"
        assert config.github.token == "ghp_fallback"
        assert config.is_configured

    def test_essaykit_token_preferred(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESSAYKIT_GITHUB_TOKEN", "ghp_primary")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_fallback")
        assert load_or_create_config(tmp_path).github.token == "ghp_primary"


class TestValidation:
    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[essaykit]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_unknown_keys_ignored(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[cache]\nmemory_ttl = 10\nsomething = "x"\n')
        assert load_config(tmp_path).cache.memory_ttl == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_saved_file_is_valid_toml(self, tmp_path):
        save_config(EssayKitConfig(path=tmp_path))
        with open(tmp_path / CONFIG_FILENAME, "rb") as f:
            data = tomllib.load(f)
        assert data["essaykit"]["version"] == 1
        assert "token" not in data["github"]


class TestImageUrls:
    @pytest.mark.parametrize("cdn,expected", [
        ("jsdelivr", "https://cdn.jsdelivr.net/gh/alice/pics@main/images/2025/01/a.png"),
        ("statically", "https://cdn.statically.io/gh/alice/pics/main/images/2025/01/a.png"),
        ("raw", "https://raw.githubusercontent.com/alice/pics/main/images/2025/01/a.png"),
        ("unknown", "https://cdn.jsdelivr.net/gh/alice/pics@main/images/2025/01/a.png"),
    ])
    def test_cdn_templates(self, tmp_path, cdn, expected):
        config = EssayKitConfig(
            path=tmp_path,
            github=GitHubConfig(owner="alice"),
            images=ImageConfig(repo="pics", cdn=cdn),
        )
        assert config.image_cdn_url("images/2025/01/a.png") == expected

    def test_image_configured_needs_repo(self, config):
        assert config.is_image_configured
        config.images.repo = ""
        assert not config.is_image_configured
