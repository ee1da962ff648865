"""Configuration handling for the parambuf CLI.

Reads and writes the [tool.parambuf] table of pyproject.toml:

    [tool.parambuf]
    system = "models/oscillator.yaml"
    format = "table"
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import tomllib
import toml

from ..constants import CONFIG_TABLE

OUTPUT_FORMATS = ("table", "csv", "json")


def _pyproject_path(root: Optional[Path]) -> Path:
    return (root or Path.cwd()) / "pyproject.toml"


def read_pyproject(root: Optional[Path] = None) -> Dict[str, Any]:
    """Read pyproject.toml configuration.

    Args:
        root: Project directory (default: current directory)

    Returns:
        The [tool.parambuf] section, or empty dict if not found

    Raises:
        FileNotFoundError: If pyproject.toml doesn't exist
        tomllib.TOMLDecodeError: If TOML is malformed
    """
    pyproject_path = _pyproject_path(root)

    if not pyproject_path.exists():
        raise FileNotFoundError("pyproject.toml not found in current directory")

    with open(pyproject_path, "rb") as f:
        data = tomllib.load(f)

    return data.get("tool", {}).get(CONFIG_TABLE, {})


def write_config(system: str, fmt: str = "table", root: Optional[Path] = None) -> None:
    """Add or update the [tool.parambuf] table in pyproject.toml.

    Other tables of the file are preserved.

    Args:
        system: Default system description file
        fmt: Default output format
        root: Project directory (default: current directory)
    """
    pyproject_path = _pyproject_path(root)

    if pyproject_path.exists():
        with open(pyproject_path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    else:
        data = {}

    data.setdefault("tool", {})
    section = data["tool"].setdefault(CONFIG_TABLE, {})
    section["system"] = system
    section["format"] = fmt

    with open(pyproject_path, "w", encoding="utf-8") as f:
        toml.dump(data, f)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate parambuf configuration.

    Args:
        config: The [tool.parambuf] configuration

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    system = config.get("system")
    if system is not None and not isinstance(system, str):
        errors.append(f"'system' must be a path string, got: {system!r}")

    fmt = config.get("format")
    if fmt is not None and fmt not in OUTPUT_FORMATS:
        errors.append(f"Unsupported format: {fmt}. Available: {list(OUTPUT_FORMATS)}")

    unknown = sorted(set(config) - {"system", "format"})
    if unknown:
        errors.append(f"Unknown configuration keys: {unknown}")

    return errors
