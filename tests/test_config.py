"""Tests for YAML configuration."""

from pathlib import Path

import pytest

from campaign_graph.config import CONFIG_DIR_NAME, Config


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the home directory at a temporary location."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setattr(Path, "home", lambda: home_dir)
    return home_dir


def test_set_get_unset(tmp_path: Path, home: Path) -> None:
    """Test basic operations persist to disk."""
    config = Config(config_dir=tmp_path / "local")
    config.set("backend", "sqlite")
    assert config.get("backend") == "sqlite"

    reloaded = Config(config_dir=tmp_path / "local")
    assert reloaded.get("backend") == "sqlite"

    assert reloaded.unset("backend")
    assert not reloaded.unset("backend")
    assert Config(config_dir=tmp_path / "local").lookup("backend") == ("sqlite", "default")
    assert reloaded.get("missing", "fallback") == "fallback"


def test_local_falls_back_to_global(tmp_path: Path, home: Path) -> None:
    """Test global values are visible from local config and overridable."""
    global_config = Config(use_global=True)
    assert global_config.config_dir == home / CONFIG_DIR_NAME
    global_config.set("sqlite.path", "/srv/global.db")
    global_config.set("backend", "sqlite")

    local = Config(config_dir=tmp_path / "local")
    local.set("sqlite.path", "/srv/local.db")

    assert local.get("backend") == "sqlite"
    assert local.list() == {"sqlite.path": "/srv/local.db", "backend": "sqlite"}
    assert Config(use_global=True).list() == {"sqlite.path": "/srv/global.db", "backend": "sqlite"}


def test_database_path(tmp_path: Path, home: Path) -> None:
    """Test the default and configured database locations."""
    config = Config(config_dir=tmp_path / "local")
    assert config.database_path() == tmp_path / "local" / "campaign.db"

    config.set("sqlite.path", "~/campaigns/shadows.db")
    assert config.database_path() == home / "campaigns" / "shadows.db"


def test_invalid_yaml_raises(tmp_path: Path, home: Path) -> None:
    """Test that a broken config file is reported."""
    config_dir = tmp_path / "local"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("key: [unclosed\n")

    with pytest.raises(ValueError, match="Failed to load config"):
        Config(config_dir=config_dir)


def test_only_known_settings_are_written(tmp_path: Path, home: Path) -> None:
    """Test key and value validation on set."""
    config = Config(config_dir=tmp_path / "local")

    with pytest.raises(ValueError, match="Unknown setting"):
        config.set("github.token", "secret")
    with pytest.raises(ValueError, match="Invalid value for backend"):
        config.set("backend", "notion")
    with pytest.raises(ValueError, match="cannot be empty"):
        config.set("sqlite.path", "  ")
    with pytest.raises(ValueError, match="whole number"):
        config.set("navigation.max_depth", "deep")
    with pytest.raises(ValueError, match="at least 1"):
        config.set("navigation.max_depth", "0")

    assert config.set("navigation.max_depth", "3") == 3
    assert config.navigation_depth() == 3
    assert config.list() == {"navigation.max_depth": 3}


def test_lookup_reports_source(tmp_path: Path, home: Path) -> None:
    """Test where an effective value comes from."""
    Config(use_global=True).set("navigation.max_depth", "4")
    local = Config(config_dir=tmp_path / "local")
    local.set("sqlite.path", "/srv/local.db")

    assert local.lookup("sqlite.path") == ("/srv/local.db", "local")
    assert local.lookup("navigation.max_depth") == (4, "global")
    assert local.lookup("backend") == ("sqlite", "default")
    assert local.lookup("unknown") == (None, None)
    assert local.navigation_depth() == 4


def test_backend_name_rejects_hand_edited_value(tmp_path: Path, home: Path) -> None:
    """Test that an unsupported backend written outside the CLI is reported."""
    config_dir = tmp_path / "local"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("backend: notion\n")

    config = Config(config_dir=config_dir)
    with pytest.raises(ValueError, match="Unknown backend: notion"):
        config.backend_name()
    assert Config(config_dir=tmp_path / "other").backend_name() == "sqlite"


def test_non_mapping_config_file_raises(tmp_path: Path, home: Path) -> None:
    """Test that a config file must hold a mapping."""
    config_dir = tmp_path / "local"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="expected a mapping"):
        Config(config_dir=config_dir)
