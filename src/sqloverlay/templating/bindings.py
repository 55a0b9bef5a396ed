"""Binding loading utilities for compile requests.

Parameter values are loaded with this priority order:
1. CLI arguments (highest priority)
2. Bindings file (JSON/YAML/TOML)

Control values are loaded with this priority order:
1. CLI arguments (highest priority)
2. Bindings file
3. Config file `[sqloverlay.controls]`
4. Environment variables (lowest priority)
"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console

from sqloverlay.templating.models import BindingContext

console = Console(stderr=True)

CONTROL_ENV_PREFIX = "SQLOVERLAY_CONTROL_"


def load_bindings_file(path: Path) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Load parameters and controls from a JSON, YAML, or TOML file.

    The file holds either `parameters` and/or `controls` mappings, or a flat
    mapping that is read entirely as parameters.

    Args:
        path: Path to the bindings file. Must have .json, .yaml, .yml, or .toml extension.

    Returns:
        Tuple of (parameters, controls).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file format is not supported or cannot be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Bindings file not found: {path}")

    suffix = path.suffix.lower()

    if suffix == ".json":
        data = _load_json_file(path)
    elif suffix in (".yaml", ".yml"):
        data = _load_yaml_file(path)
    elif suffix == ".toml":
        data = _load_toml_file(path)
    else:
        raise ValueError(
            f"Unsupported bindings file format: {suffix}. "
            "Use .json, .yaml, .yml, or .toml"
        )

    if "parameters" in data or "controls" in data:
        parameters = data.get("parameters") or {}
        controls = data.get("controls") or {}
        if not isinstance(parameters, dict) or not isinstance(controls, dict):
            raise ValueError(
                f"Bindings file {path}: 'parameters' and 'controls' must be mappings"
            )
        return parameters, controls

    return data, {}


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load bindings from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(
                f"Bindings file {path} must contain a JSON object, "
                f"got {type(data).__name__}"
            )

        return data

    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load bindings from a YAML file.

    Requires PyYAML to be installed.
    """
    try:
        import yaml
    except ImportError:
        raise ValueError(
            f"Cannot load YAML file {path}: PyYAML is not installed. "
            "Install it with: pip install sql-overlay[yaml]"
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}

        if not isinstance(data, dict):
            raise ValueError(
                f"Bindings file {path} must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )

        return data

    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e


def _load_toml_file(path: Path) -> Dict[str, Any]:
    """Load bindings from a TOML file."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)

    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def parse_cli_bindings(binding_args: Optional[List[str]]) -> Dict[str, Any]:
    """Parse CLI binding arguments in Name=value[,value...] format.

    A single value stays a scalar; comma-separated values become a list.
    Each value gets basic type inference:
    - Integers: 123, -1
    - Floats: 12.34
    - Booleans: true, false (case-insensitive)
    - Strings: everything else

    Repeating a name appends to its list.

    Args:
        binding_args: List of binding strings.

    Returns:
        A dictionary of parsed bindings.

    Raises:
        ValueError: If a binding string is not in Name=value format.
    """
    if not binding_args:
        return {}

    bindings: Dict[str, Any] = {}

    for binding in binding_args:
        if "=" not in binding:
            raise ValueError(
                f"Invalid binding format: '{binding}'. Expected 'Name=value'"
            )

        key, value = binding.split("=", 1)
        key = key.strip()

        if not key:
            raise ValueError(f"Empty binding name in: '{binding}'")

        parsed = parse_list_value(value)
        if key in bindings:
            previous = bindings[key]
            previous = previous if isinstance(previous, list) else [previous]
            parsed = parsed if isinstance(parsed, list) else [parsed]
            bindings[key] = previous + parsed
        else:
            bindings[key] = parsed

    return bindings


def parse_list_value(value: str) -> Any:
    """Parse `a,b,c` into a typed list and a lone value into a typed scalar."""
    items = [item.strip() for item in value.split(",")]
    if len(items) == 1:
        return _infer_type(items[0])
    return [_infer_type(item) for item in items if item]


def _infer_type(value: str) -> Any:
    """Infer the type of a string value.

    Args:
        value: The string value to parse.

    Returns:
        The value converted to the inferred type.
    """
    # Check for boolean
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    # Check for integer
    try:
        return int(value)
    except ValueError:
        pass

    # Check for float
    try:
        return float(value)
    except ValueError:
        pass

    # Default to string
    return value


def load_env_controls(prefix: str = CONTROL_ENV_PREFIX) -> Dict[str, Any]:
    """Load control values from environment variables.

    Environment variables with the specified prefix are loaded and the
    prefix is stripped from the key. For example,
    SQLOVERLAY_CONTROL_LANGUAGES=-1,-2 becomes the control "LANGUAGES"
    bound to [-1, -2]. Control names keep their case.

    Args:
        prefix: The prefix to look for in environment variable names.

    Returns:
        A dictionary of controls from environment variables.
    """
    controls: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            name = key[len(prefix) :]
            if name:
                controls[name] = parse_list_value(value)

    return controls


def merge_bindings(*sources: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge bindings from multiple sources with priority.

    Later sources in the argument list have higher priority and will
    override values from earlier sources.

    Args:
        *sources: Binding dictionaries to merge, from lowest to highest priority.
                 None values are skipped.

    Returns:
        A merged dictionary of bindings.
    """
    result: Dict[str, Any] = {}

    for source in sources:
        if source is not None:
            result.update(source)

    return result


def load_binding_context(
    cli_params: Optional[List[str]] = None,
    cli_controls: Optional[List[str]] = None,
    bindings_file: Optional[Path] = None,
    config_controls: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> BindingContext:
    """Load and merge bindings from all sources into a BindingContext.

    Args:
        cli_params: CLI parameter strings in "Name=value" format.
        cli_controls: CLI control strings in "Name=value" format.
        bindings_file: Path to a bindings file (JSON, YAML, or TOML).
        config_controls: Controls from the configuration file.
        use_env: Whether to load controls from environment variables.

    Returns:
        The merged BindingContext.
    """
    file_params: Optional[Dict[str, Any]] = None
    file_controls: Optional[Dict[str, Any]] = None

    if bindings_file:
        try:
            file_params, file_controls = load_bindings_file(bindings_file)
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[yellow]Warning:[/yellow] {e}")

    params: Dict[str, Any] = {}
    controls: Dict[str, Any] = {}
    try:
        params = parse_cli_bindings(cli_params)
    except ValueError as e:
        console.print(f"[yellow]Warning:[/yellow] {e}")
    try:
        controls = parse_cli_bindings(cli_controls)
    except ValueError as e:
        console.print(f"[yellow]Warning:[/yellow] {e}")

    return BindingContext(
        parameters=merge_bindings(file_params, params),
        controls=merge_bindings(
            load_env_controls() if use_env else None,
            config_controls,
            file_controls,
            controls,
        ),
    )
