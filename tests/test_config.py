"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_autosync.config import Config, parse_size, parse_time


@pytest.fixture(autouse=True)
def clear_config_cache(mocker: MagicMock, tmp_path: Path) -> Any:
    """Ensures every test starts with a clean cache and no user config."""
    mocker.patch("git_autosync.config.CONFIG_FILE", tmp_path / "missing.toml")
    Config._global_cache = None
    yield
    Config._global_cache = None


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.core.remote_name == "origin"
    assert conf.core.branch == "main"
    assert conf.daemon.batch_interval == 15.0
    assert conf.daemon.pull_interval == 300.0
    assert conf.checks.require_ssh is True
    assert conf.report.filename == "repo-stats.txt"


def test_author_tag_defaults_to_short_hostname(mocker: MagicMock) -> None:
    mocker.patch("socket.gethostname", return_value="laptop.example.org")

    assert Config().core.author_tag == "laptop"

    conf = Config()
    conf.core.author = "ci-runner"
    assert conf.core.author_tag == "ci-runner"


def test_config_presets() -> None:
    """Verifies that applying a preset updates the daemon intervals correctly."""
    conf = Config()

    conf.daemon.preset = "eager"
    conf.daemon.apply_preset()
    assert conf.daemon.batch_interval == 5.0
    assert conf.daemon.pull_interval == 60.0

    conf.daemon.preset = "lazy"
    conf.daemon.apply_preset()
    assert conf.daemon.batch_interval == 120.0
    assert conf.daemon.pull_interval == 1800.0


def test_config_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[core]\nremote_name = "upstream"\n[daemon]\nbatch_interval = "30s"\n'
    )
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "autosync.toml").write_text('[daemon]\nbatch_interval = "2 min"\n')

    mocker.patch("git_autosync.config.CONFIG_FILE", global_config_path)

    conf = Config.load(repo_path=repo)

    assert conf.core.remote_name == "upstream"  # From Global
    assert conf.daemon.batch_interval == 120.0  # Local overrides Global


def test_local_overrides_do_not_leak_into_cache(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "autosync.toml").write_text('[core]\nbranch = "trunk"\n')

    assert Config.load(repo_path=repo).core.branch == "trunk"
    assert Config.load().core.branch == "main"


def test_config_load_from_pyproject(tmp_path: Path) -> None:
    """Verifies that configuration can be loaded from pyproject.toml."""
    (tmp_path / "pyproject.toml").write_text(
        '[tool.autosync.core]\nremote_name = "backup"\n'
        '[tool.autosync.daemon]\npreset = "eager"\n'
    )

    conf = Config.load(repo_path=tmp_path)

    assert conf.core.remote_name == "backup"
    assert conf.daemon.preset == "eager"
    assert conf.daemon.batch_interval == 5.0


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400
    assert parse_time("250ms") == pytest.approx(0.25)

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    (tmp_path / "autosync.toml").write_text(
        "[daemon]\n"
        'batch_interval = "fast"\n'
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(repo_path=tmp_path)

    assert conf.daemon.batch_interval == 15.0
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [daemon]: fake_setting" in caplog.text
    assert "Config error in [daemon].batch_interval" in caplog.text
    assert "Config error in [limits].max_log_size" in caplog.text


def test_config_syntax_error_keeps_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    (tmp_path / "autosync.toml").write_text("[core\nremote_name = ")

    conf = Config.load(repo_path=tmp_path)

    assert conf.core.remote_name == "origin"
    assert "Config syntax error" in caplog.text
