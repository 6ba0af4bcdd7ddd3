"""Configuration commands for campaign-graph CLI."""

from cyclopts import App

from campaign_graph.config import SETTINGS, get_config

config_app = App(name="config", help="Manage configuration")


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Setting name, one of backend, sqlite.path, navigation.max_depth
        value: New value
        global_: Write to ~/.campaign-graph instead of the project directory
    """
    config = get_config(use_global=global_)
    stored = config.set(key, value)
    print(f"Set {key} = {stored} ({config.scope})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Remove a setting from the local or global file."""
    config = get_config(use_global=global_)
    if config.unset(key):
        print(f"Unset {key} ({config.scope})")
    else:
        print(f"{key} is not set in {config.scope} config")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Show a setting and where its value comes from."""
    config = get_config(use_global=global_)
    value, source = config.lookup(key)
    if source is None:
        print(f"{key} is not set")
    else:
        print(f"{key} = {value} ({source})")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List known settings with their effective values, then any unrecognised keys."""
    config = get_config(use_global=global_)

    print("Settings:\n")
    for key, setting in SETTINGS.items():
        value, source = config.lookup(key)
        shown = f"{value} ({source})" if source else "(not set)"
        print(f"{key} = {shown}")
        print(f"    {setting.help}")

    unknown = {key: value for key, value in config.list().items() if key not in SETTINGS}
    if unknown:
        print("\nUnrecognised keys (ignored):\n")
        for key, value in unknown.items():
            print(f"{key} = {value}")


@config_app.command
def path(global_: bool = False) -> None:
    """Show the config file and the database it points at."""
    config = get_config(use_global=global_)
    print(f"Config file: {config.config_file}")
    print(f"Backend: {config.backend_name()}")
    print(f"Database: {config.database_path()}")
