"""Tests for the Command Line Interface (CLI) module."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import Upstream, requires_git
from gitit import cli
from gitit.browse import DirectoryListing
from gitit.config import Config
from gitit.objects import EntryMode, TreeEntry


@pytest.fixture(autouse=True)
def quiet_logging(mocker: MagicMock) -> MagicMock:
    """Keeps `main` from attaching handlers to the shared logger."""
    return mocker.patch("gitit.cli.daemon.setup_logging")


def _write_config(tmp_path: Path, repos: dict[str, str]) -> Path:
    lines = ["[server]", 'mirror_dir = "mirrors"', "workers = 2"]
    for name, url in repos.items():
        lines += [f"[repos.{name}]", f"url = '{url}'"]
    path = tmp_path / "gitit.toml"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_missing_config_is_fatal(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    code = cli.main(["--config", str(tmp_path / "nope.toml"), "status"])

    assert code == 2
    assert "FATAL" in capsys.readouterr().err


def test_status_lists_unsynced_repositories(
    tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that `status` shows every configured repository before any sync.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing stdout.
    """
    config = _write_config(tmp_path, {"alpha": "https://example.com/a.git"})

    assert cli.main(["-c", str(config), "status"]) == 0

    out = capsys.readouterr().out
    assert "alpha" in out
    assert "absent" in out
    assert "unknown" in out


def test_browse_errors_exit_non_zero(
    tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    config = _write_config(tmp_path, {"alpha": "https://example.com/a.git"})

    assert cli.main(["-c", str(config), "ls", "missing"]) == 1
    assert "RepoNotFound" in capsys.readouterr().err

    assert cli.main(["-c", str(config), "ls", "alpha"]) == 1
    assert "RepoNotSynced" in capsys.readouterr().err

    assert cli.main(["-c", str(config), "sync", "missing"]) == 1


def test_watch_runs_daemon(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that the `watch` command hands the loaded config to the daemon."""
    config = _write_config(tmp_path, {})
    mock_run = mocker.patch("gitit.cli.daemon.run")

    assert cli.main(["-c", str(config), "watch"]) == 0

    mock_run.assert_called_once()
    assert isinstance(mock_run.call_args[0][0], Config)


def test_logging_mode_follows_command(
    tmp_path: Path, quiet_logging: MagicMock, mocker: MagicMock
) -> None:
    config = _write_config(tmp_path, {})
    mocker.patch("gitit.cli.daemon.run")

    cli.main(["-c", str(config), "-v", "status"])
    quiet_logging.assert_called_with(interactive=True, verbose=True)

    cli.main(["-c", str(config), "watch"])
    quiet_logging.assert_called_with(interactive=False, verbose=False)


def test_listing_marks_symlinks_without_arrow(capsys: pytest.CaptureFixture) -> None:
    listing = DirectoryListing(
        repo="demo",
        ref="HEAD",
        commit="c" * 40,
        path="",
        entries=[
            TreeEntry(name="docs", mode=EntryMode.DIRECTORY, oid="d" * 40),
            TreeEntry(name="latest", mode=EntryMode.SYMLINK, oid="e" * 40),
        ],
    )

    cli.print_listing(listing)

    out = capsys.readouterr().out
    assert "latest (symlink)" in out
    assert "->" not in out


@requires_git
def test_sync_then_browse_commands(
    tmp_path: Path, upstream: Upstream, capsys: pytest.CaptureFixture
) -> None:
    """Verifies a full sync, then ls/cat/log/show/diff against the new mirror."""
    first = upstream.commit({"README.md": "hello\n", "docs/a.md": "a\n"}, "first")
    upstream.commit({"README.md": "hello again\n"}, "second")
    config = _write_config(tmp_path, {"demo": upstream.url})
    args = ["-c", str(config)]

    assert cli.main([*args, "sync"]) == 0
    assert "success" in capsys.readouterr().out
    assert (tmp_path / "mirrors" / "demo.git").is_dir()

    assert cli.main([*args, "ls", "demo"]) == 0
    out = capsys.readouterr().out
    assert "README.md" in out
    assert "docs/" in out

    assert cli.main([*args, "cat", "demo", "README.md", "--ref", first]) == 0
    assert capsys.readouterr().out == "hello\n"

    assert cli.main([*args, "log", "demo", "-n", "1"]) == 0
    out = capsys.readouterr().out
    assert "second" in out
    assert "first" not in out

    assert cli.main([*args, "show", "demo"]) == 0
    out = capsys.readouterr().out
    assert "README.md" in out
    assert "1 files changed, +1 -1" in out

    assert cli.main([*args, "log", "demo", "--stat"]) == 0
    assert "+1 -1" in capsys.readouterr().out

    assert cli.main([*args, "diff", "demo", first, "HEAD", "--patch"]) == 0
    assert "+hello again" in capsys.readouterr().out

    assert cli.main([*args, "cat", "demo", "docs"]) == 1
    assert "NotAFile" in capsys.readouterr().err


@requires_git
def test_sync_failure_exits_non_zero(
    tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    config = _write_config(tmp_path, {"broken": str(tmp_path / "nowhere")})

    assert cli.main(["-c", str(config), "sync"]) == 1
    assert "failed" in capsys.readouterr().out
