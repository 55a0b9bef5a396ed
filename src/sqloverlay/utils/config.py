"""Configuration management for sql-overlay.

Loads configuration from sqloverlay.toml in the current working directory.
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from rich.console import Console

console = Console(stderr=True)

CONFIG_FILE_NAME = "sqloverlay.toml"
CONFIG_SECTION = "sqloverlay"


class SchemasConfig(BaseModel):
    """Physical schema names per role.

    All fields are optional. `runtime` defaults to `base` when omitted.
    """

    runtime: Optional[str] = None
    base: Optional[str] = None
    write: Optional[str] = None
    read: Optional[str] = None


class OverlayConfig(BaseModel):
    """Write-schema bookkeeping settings."""

    status_column: Optional[str] = None
    deleted_value: Optional[str] = None
    bookkeeping_columns: Optional[List[str]] = None


class PushdownConfig(BaseModel):
    """Predicate pushdown switches."""

    outer_join_on_clause: Optional[bool] = None


class TargetConfig(BaseModel):
    """Overrides for the capability flags of the selected dialect."""

    supports_cte: Optional[bool] = None
    supports_union_all: Optional[bool] = None
    prefer_cte: Optional[bool] = None
    identifier_quoting: Optional[str] = None
    pretty: Optional[bool] = None


class CatalogConfig(BaseModel):
    """Configuration for catalog providers.

    `ddl_files`/`ddl_folder` feed the `ddl` provider, `tables` the
    `memory` provider. Unknown keys are passed through to plugin providers.
    """

    model_config = ConfigDict(extra="allow")

    ddl_files: Optional[List[str]] = None
    ddl_folder: Optional[str] = None
    tables: Optional[Dict[str, Any]] = None


class ConfigSettings(BaseModel):
    """Configuration settings for sql-overlay.

    All fields are optional. None values indicate the setting was not
    specified in the config file.
    """

    dialect: Optional[str] = None
    bind_style: Optional[str] = None
    context: Optional[str] = None
    output_format: Optional[str] = None
    templates: Optional[List[str]] = None
    schemas: Optional[SchemasConfig] = None
    overlay: Optional[OverlayConfig] = None
    pushdown: Optional[PushdownConfig] = None
    target: Optional[TargetConfig] = None
    catalog_type: Optional[str] = None
    catalog: Optional[CatalogConfig] = None
    controls: Optional[Dict[str, Any]] = None
    bindings_file: Optional[str] = None


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find sqloverlay.toml in the current working directory.

    Args:
        start_path: Starting directory to search for config file.
                   Defaults to current working directory.

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()

    config_path = start_path / CONFIG_FILE_NAME

    if config_path.exists() and config_path.is_file():
        return config_path

    return None


def load_config(config_path: Optional[Path] = None) -> ConfigSettings:
    """Load configuration from sqloverlay.toml.

    Priority order:
    1. Explicit config_path parameter
    2. sqloverlay.toml in current working directory
    3. Empty ConfigSettings (all None)

    Args:
        config_path: Optional explicit path to config file.
                    If not provided, searches current working directory.

    Returns:
        ConfigSettings with values from TOML file or None for unset fields.
        Always returns a valid ConfigSettings object, even on errors.

    Error Handling:
        - Missing file: Returns empty ConfigSettings (silent)
        - Malformed TOML: Warns user and returns empty ConfigSettings
        - Invalid values: Warns user and returns empty ConfigSettings
        - Unknown keys: Ignored (forward compatibility)
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None:
        return ConfigSettings()

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)

        section = toml_data.get(CONFIG_SECTION, {})

        try:
            return ConfigSettings(**section)
        except Exception as e:
            console.print(
                f"[yellow]Warning:[/yellow] Invalid configuration in {config_path}: {e}",
            )
            console.print("[yellow]Using default settings[/yellow]")
            return ConfigSettings()

    except tomllib.TOMLDecodeError as e:
        console.print(
            f"[yellow]Warning:[/yellow] Failed to parse {config_path}: {e}",
        )
        console.print("[yellow]Using default settings[/yellow]")
        return ConfigSettings()

    except OSError as e:
        console.print(
            f"[yellow]Warning:[/yellow] Could not read {config_path}: {e}",
        )
        console.print("[yellow]Using default settings[/yellow]")
        return ConfigSettings()
