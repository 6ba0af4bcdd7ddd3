"""Settings for campaign-graph, stored as YAML.

Settings live in ``.campaign-graph/config.yaml`` in the project directory
(local scope) and ``~/.campaign-graph/config.yaml`` (global scope). A local
read falls back to the global file and then to the setting's default.
Only the settings listed in ``SETTINGS`` can be written.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from campaign_graph.breadcrumbs import MAX_BREADCRUMB_DEPTH

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".campaign-graph"
CONFIG_FILE_NAME = "config.yaml"
DEFAULT_DB_FILE = "campaign.db"


@dataclass(frozen=True)
class Setting:
    """A setting campaign-graph understands."""

    key: str
    help: str
    default: Any = None
    choices: tuple[str, ...] = ()


SETTINGS: dict[str, Setting] = {
    setting.key: setting
    for setting in (
        Setting("backend", "Storage backend", default="sqlite", choices=("sqlite",)),
        Setting("sqlite.path", "SQLite database file (default: campaign.db next to the config file)"),
        Setting("navigation.max_depth", "Breadcrumb steps kept by link navigate", default=MAX_BREADCRUMB_DEPTH),
    )
}


def validate_setting(key: str, value: Any) -> Any:
    """Check a value for a known setting and return it in its stored form.

    Raises:
        ValueError: If the key is unknown or the value is not acceptable for it
    """
    setting = SETTINGS.get(key)
    if setting is None:
        raise ValueError(f"Unknown setting: {key} (known: {', '.join(SETTINGS)})")

    if setting.choices and value not in setting.choices:
        raise ValueError(f"Invalid value for {key}: {value!r} (expected one of: {', '.join(setting.choices)})")
    if key == "sqlite.path" and not str(value).strip():
        raise ValueError("sqlite.path cannot be empty")
    if key == "navigation.max_depth":
        try:
            depth = int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {key}: {value!r} (expected a whole number)") from e
        if depth < 1:
            raise ValueError(f"Invalid value for {key}: {depth} (must be at least 1)")
        return depth
    return value


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.debug("Config file does not exist", path=str(path))
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to load config from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Failed to load config from {path}: expected a mapping")
    logger.debug("Config loaded", path=str(path), keys=sorted(data))
    return data


class Config:
    """campaign-graph settings for one scope."""

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration.

        Args:
            use_global: Read and write the global file only
            config_dir: Directory holding config.yaml, overriding the scope's default location
        """
        self.is_global = use_global
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME

        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._config = _read_yaml(self.config_file)

        self._global_config: dict[str, Any] = {}
        global_file = Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if not self.is_global and global_file != self.config_file:
            try:
                self._global_config = _read_yaml(global_file)
            except ValueError as e:
                logger.warning("Ignoring unreadable global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), scope=self.scope)

    @property
    def scope(self) -> str:
        """Scope name, "global" or "local"."""
        return "global" if self.is_global else "local"

    def _save(self) -> None:
        try:
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e
        logger.debug("Config saved", config_file=str(self.config_file))

    def lookup(self, key: str) -> tuple[Any, str | None]:
        """Find a value and where it came from: local, global, default or None."""
        if key in self._config:
            return self._config[key], self.scope
        if key in self._global_config:
            return self._global_config[key], "global"
        setting = SETTINGS.get(key)
        if setting is not None and setting.default is not None:
            return setting.default, "default"
        return None, None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or default when no scope sets it and it has no built-in default."""
        value, source = self.lookup(key)
        return default if source is None else value

    def set(self, key: str, value: Any) -> Any:
        """Validate and store a setting in this scope, returning the stored value."""
        stored = validate_setting(key, value)
        logger.debug("Setting config value", key=key, scope=self.scope)
        self._config[key] = stored
        self._save()
        return stored

    def unset(self, key: str) -> bool:
        """Remove a value from this scope. Returns False if it was not set here."""
        if key not in self._config:
            return False
        logger.debug("Unsetting config value", key=key, scope=self.scope)
        del self._config[key]
        self._save()
        return True

    def list(self) -> dict[str, Any]:
        """Values set in config files, local ones overriding global ones."""
        merged = dict(self._global_config)
        merged.update(self._config)
        return merged

    def backend_name(self) -> str:
        """Configured storage backend."""
        name = self.get("backend")
        if name not in SETTINGS["backend"].choices:
            raise ValueError(f"Unknown backend: {name}")
        return name

    def database_path(self) -> Path:
        """SQLite database file, from sqlite.path or next to the config file."""
        configured = self.get("sqlite.path")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir / DEFAULT_DB_FILE

    def navigation_depth(self) -> int:
        """Number of breadcrumb steps to keep when navigating."""
        return validate_setting("navigation.max_depth", self.get("navigation.max_depth"))


def get_config(use_global: bool = False) -> Config:
    """Get the configuration for the current directory, or the global one."""
    return Config(use_global=use_global)
