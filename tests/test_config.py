"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path

import pytest

from gitit.config import Config, RepoConfig, parse_time, validate_repo_name
from gitit.constants import DEFAULT_SYNC_TIMEOUT, DEFAULT_WORKERS
from gitit.errors import ConfigError


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.server.workers == DEFAULT_WORKERS
    assert conf.server.sync_timeout == DEFAULT_SYNC_TIMEOUT
    assert conf.server.sync_interval == 0
    assert conf.repos == []


def test_config_load_full_file(tmp_path: Path) -> None:
    """Verifies that server settings and repositories load in file order.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    path = tmp_path / "gitit.toml"
    path.write_text(
        "[server]\n"
        'address = "0.0.0.0:9000"\n'
        "workers = 2\n"
        'sync_interval = "15m"\n'
        'sync_timeout = "30s"\n'
        "[repos.zeta]\n"
        'url = "https://example.com/zeta.git"\n'
        'title = "Zeta"\n'
        "[repos.alpha]\n"
        'url = "https://example.com/alpha.git"\n'
        'head = "trunk"\n'
    )

    conf = Config.load(path)

    assert conf.server.address == "0.0.0.0:9000"
    assert conf.server.workers == 2
    assert conf.server.sync_interval == 900
    assert conf.server.sync_timeout == 30
    # Relative mirror_dir is anchored next to the config file.
    assert conf.server.mirror_dir == tmp_path / "repos"
    assert [r.name for r in conf.repos] == ["zeta", "alpha"]
    assert conf.repos[0].title == "Zeta"
    assert conf.repos[1].title == "alpha"  # Title falls back to the name.
    assert conf.repos[1].head == "trunk"
    assert conf.errors == []


def test_config_missing_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config file"):
        Config.load(tmp_path / "nope.toml")


def test_config_syntax_error_is_fatal(tmp_path: Path) -> None:
    path = tmp_path / "gitit.toml"
    path.write_text("[server\n")
    with pytest.raises(ConfigError, match="Config syntax error"):
        Config.load(path)


def test_invalid_repo_entry_only_disables_that_entry(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Verifies that one broken entry is skipped while the others load.

    Args:
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.ERROR)
    conf = Config.from_dict(
        {
            "repos": {
                "good": {"url": "https://example.com/good.git"},
                "no-url": {"title": "Missing URL"},
                "../escape": {"url": "https://example.com/x.git"},
            }
        }
    )

    assert [r.name for r in conf.repos] == ["good"]
    assert len(conf.errors) == 2
    assert "missing a url" in caplog.text
    assert "Invalid repository name" in caplog.text


def test_config_invalid_keys_and_values(caplog: pytest.LogCaptureFixture) -> None:
    """Verifies that unknown keys are ignored and invalid values fall back to defaults.

    Args:
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)
    conf = Config.from_dict(
        {
            "server": {
                "sync_interval": "often",
                "workers": 0,
                "fake_setting": "ignored",
            }
        }
    )

    assert conf.server.sync_interval == 0
    assert conf.server.workers == DEFAULT_WORKERS
    assert "Unknown config keys in [server]: fake_setting" in caplog.text
    assert "Config error in [server].sync_interval: Invalid time format" in caplog.text
    assert "Config error in [server].workers" in caplog.text


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")
    with pytest.raises(ValueError):
        parse_time(-5)


@pytest.mark.parametrize(
    "name",
    ["", "..", "../etc", "a/b", "a\\b", ".hidden", "-rf", "repo.git", "a..b", "spa ce"],
)
def test_validate_repo_name_rejects_unsafe_names(name: str) -> None:
    with pytest.raises(ConfigError):
        validate_repo_name(name)


@pytest.mark.parametrize("name", ["gitit", "my-repo", "repo_2", "v1.0", "A"])
def test_validate_repo_name_accepts_plain_names(name: str) -> None:
    assert validate_repo_name(name) == name


def test_repo_config_rejects_option_like_url() -> None:
    with pytest.raises(ConfigError, match="invalid url"):
        RepoConfig.from_dict("x", {"url": "--upload-pack=evil"})
