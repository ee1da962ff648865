"""Layout inspection commands."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import polars as pl
import typer
import yaml

from ..buffers.store import ParameterStore
from ..errors import ParameterBufferError
from ..loader import load_system
from .config import OUTPUT_FORMATS, read_pyproject, validate_config, write_config

logger = logging.getLogger(__name__)


def _load_config() -> Dict[str, Any]:
    try:
        config = read_pyproject()
    except FileNotFoundError:
        return {}
    errors = validate_config(config)
    if errors:
        for error in errors:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(1)
    return config


def _resolve_system(system: Optional[str], config: Dict[str, Any]):
    path = system or config.get("system")
    if not path:
        typer.echo("Error: No system given and no [tool.parambuf] system configured", err=True)
        raise typer.Exit(1)
    try:
        return load_system(path)
    except (FileNotFoundError, ParameterBufferError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _emit(frame: pl.DataFrame, fmt: str) -> None:
    if fmt == "csv":
        typer.echo(frame.write_csv(), nl=False)
    elif fmt == "json":
        typer.echo(frame.write_json())
    else:
        with pl.Config(tbl_rows=-1):
            typer.echo(str(frame))


def layout_command(
    system: Optional[str] = typer.Argument(None, help="System description (YAML or TOML)"),
    fmt: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: table, csv or json"),
):
    """Show how a system's parameters are laid out into buffers."""
    config = _load_config()
    fmt = fmt or config.get("format", "table")
    if fmt not in OUTPUT_FORMATS:
        typer.echo(f"Error: Unsupported format: {fmt}. Available: {list(OUTPUT_FORMATS)}", err=True)
        raise typer.Exit(1)

    system_spec = _resolve_system(system, config)
    try:
        ic = system_spec.index_cache
    except ParameterBufferError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    _emit(ic.layout_frame(), fmt)


def check_command(
    system: Optional[str] = typer.Argument(None, help="System description (YAML or TOML)"),
    values: Optional[Path] = typer.Option(None, "--values", help="YAML file of parameter values"),
):
    """Build a parameter store from defaults (and optional values) and report problems."""
    config = _load_config()
    system_spec = _resolve_system(system, config)

    p = {}
    if values is not None:
        if not values.exists():
            typer.echo(f"Error: Values file not found: {values}", err=True)
            raise typer.Exit(1)
        with open(values) as f:
            p = yaml.safe_load(f) or {}

    try:
        store = ParameterStore.from_system(system_spec, p)
    except ParameterBufferError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    ic = system_spec.index_cache
    typer.echo(f"✓ {system_spec.name}: parameter store built")
    typer.echo(f"  Tunable    : {len(store.tunable)} values")
    typer.echo(f"  Discrete   : {len(ic.discrete_buffer_sizes)} clocks x {ic.discrete_types_per_clock} types")
    typer.echo(f"  Constants  : {len(store.constant)} buffers")
    typer.echo(f"  Nonnumeric : {len(store.nonnumeric)} buffers")
    typer.echo(f"  Dependent  : {len(ic.dependent_pars)} parameters")
    typer.echo(f"  Buffers    : {len(store)}")
    logger.info(f"Built store for {system_spec.name} with {len(store)} buffers")


def init_command(
    system: str = typer.Argument(..., help="Default system description (YAML or TOML)"),
    fmt: str = typer.Option("table", "--format", "-f", help="Default output format"),
):
    """Write the [tool.parambuf] table to pyproject.toml."""
    if fmt not in OUTPUT_FORMATS:
        typer.echo(f"Error: Unsupported format: {fmt}. Available: {list(OUTPUT_FORMATS)}", err=True)
        raise typer.Exit(1)
    write_config(system, fmt)
    typer.echo(f"✓ Configured system {system} (format={fmt}) in pyproject.toml")
