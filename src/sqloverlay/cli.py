"""CLI entry point for sql-overlay."""

from io import StringIO
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from sqloverlay.catalog import CatalogError, ColumnCatalog, get_catalog
from sqloverlay.compiler import OverlayCompiler, get_dialect
from sqloverlay.compiler.dialect import DialectDescriptor
from sqloverlay.compiler.formatters import (
    JsonFormatter,
    OutputWriter,
    PlanTextFormatter,
    TemplateListFormatter,
    TextFormatter,
)
from sqloverlay.compiler.models import CompiledStatement
from sqloverlay.errors import CompilationError, MissingBindingError
from sqloverlay.global_models import BindStyle, ExecutionContext
from sqloverlay.overlay import OverlaySettings
from sqloverlay.schema import SchemaBindingTable
from sqloverlay.templating.bindings import load_binding_context
from sqloverlay.templating.registry import TemplateRegistry
from sqloverlay.utils.config import ConfigSettings, load_config
from sqloverlay.utils.file_utils import expand_paths

TEMPLATE_PATTERN = "*.tpl"

app = typer.Typer(
    name="sqloverlay",
    help="Compile overlay-aware SQL templates for runtime and workspace schemas.",
    invoke_without_command=False,
)
console = Console()
err_console = Console(stderr=True)


def _warn(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


def _load_registry(
    template_paths: Optional[List[Path]], config: ConfigSettings
) -> TemplateRegistry:
    """Load templates from CLI paths, falling back to config `templates`.

    Raises:
        ValueError: If no template location is given anywhere.
        FileNotFoundError: If a location does not exist.
    """
    paths = template_paths or [Path(p) for p in config.templates or []]
    if not paths:
        raise ValueError(
            "No templates given. Use --templates or set 'templates' in sqloverlay.toml"
        )

    registry = TemplateRegistry.from_paths(expand_paths(paths, TEMPLATE_PATTERN))
    for skipped in registry.skipped:
        name = skipped.name or "<unnamed>"
        _warn(f"Skipping template {name} (line {skipped.line}): {skipped.reason}")
    return registry


def _build_schema_bindings(
    config: ConfigSettings,
    runtime: Optional[str],
    base: Optional[str],
    write: Optional[str],
    read: Optional[str],
) -> SchemaBindingTable:
    schemas = config.schemas
    base = base or (schemas.base if schemas else None)
    write = write or (schemas.write if schemas else None)
    read = read or (schemas.read if schemas else None)
    runtime = runtime or (schemas.runtime if schemas else None) or base
    if not runtime:
        raise ValueError(
            "No runtime schema configured. Use --runtime-schema or set "
            "[sqloverlay.schemas] runtime"
        )
    return SchemaBindingTable(runtime=runtime, base=base, write=write, read=read)


def _build_catalog(
    config: ConfigSettings,
    catalog_type: Optional[str],
    ddl_folder: Optional[Path],
    dialect: DialectDescriptor,
) -> ColumnCatalog:
    catalog = get_catalog(catalog_type or config.catalog_type or "ddl")
    catalog_config = config.catalog.model_dump(exclude_none=True) if config.catalog else {}
    if ddl_folder:
        catalog_config["ddl_folder"] = str(ddl_folder)
    catalog_config.setdefault("dialect", dialect.sqlglot_dialect)
    catalog.configure(catalog_config)
    return catalog


def _build_dialect(
    config: ConfigSettings, dialect: Optional[str], prefer_cte: Optional[bool]
) -> DialectDescriptor:
    overrides = config.target.model_dump(exclude_none=True) if config.target else {}
    if prefer_cte is not None:
        overrides["prefer_cte"] = prefer_cte
    return get_dialect(dialect or config.dialect or "db2", **overrides)


def _build_overlay_settings(config: ConfigSettings) -> OverlaySettings:
    if not config.overlay:
        return OverlaySettings()
    return OverlaySettings(**config.overlay.model_dump(exclude_none=True))


def _compile(
    config: ConfigSettings,
    template_name: str,
    templates: Optional[List[Path]],
    context: Optional[str],
    dialect: Optional[str],
    bind_style: Optional[str],
    param: Optional[List[str]],
    control: Optional[List[str]],
    bindings_file: Optional[Path],
    catalog_type: Optional[str],
    ddl_folder: Optional[Path],
    runtime_schema: Optional[str],
    base_schema: Optional[str],
    write_schema: Optional[str],
    read_schema: Optional[str],
    prefer_cte: Optional[bool],
) -> CompiledStatement:
    """Shared body of the `compile` and `plan` commands."""
    context_value = ExecutionContext(context or config.context or "runtime")
    bind_style_value = BindStyle(bind_style or config.bind_style or "inline")
    descriptor = _build_dialect(config, dialect, prefer_cte)

    registry = _load_registry(templates, config)
    schema_bindings = _build_schema_bindings(
        config, runtime_schema, base_schema, write_schema, read_schema
    )
    catalog = _build_catalog(config, catalog_type, ddl_folder, descriptor)

    config_bindings_file = Path(config.bindings_file) if config.bindings_file else None
    binding_context = load_binding_context(
        cli_params=param,
        cli_controls=control,
        bindings_file=bindings_file or config_bindings_file,
        config_controls=config.controls,
        use_env=True,
    )

    outer_join_on_clause = True
    if config.pushdown and config.pushdown.outer_join_on_clause is not None:
        outer_join_on_clause = config.pushdown.outer_join_on_clause

    compiler = OverlayCompiler(
        registry,
        schema_bindings,
        catalog,
        dialect=descriptor,
        overlay_settings=_build_overlay_settings(config),
        outer_join_on_clause=outer_join_on_clause,
        bind_style=bind_style_value,
        on_warning=_warn,
    )
    return compiler.compile(template_name, binding_context, context_value)


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


TemplatesOption = typer.Option(
    None,
    "--templates",
    "-T",
    help="Template file or directory of *.tpl files (repeatable, default: from config)",
)
ContextOption = typer.Option(
    None,
    "--context",
    "-c",
    help="Execution context: 'runtime' or 'workspace' (default: runtime, or from config)",
)
DialectOption = typer.Option(
    None,
    "--dialect",
    "-d",
    help="Target dialect preset or sqlglot dialect (default: db2, or from config)",
)
BindStyleOption = typer.Option(
    None,
    "--bind-style",
    help="Parameter binding: 'inline' or 'qmark' (default: inline, or from config)",
)
ParamOption = typer.Option(
    None,
    "--param",
    "-p",
    help="Parameter value in Name=value[,value...] format (repeatable)",
)
ControlOption = typer.Option(
    None,
    "--control",
    help="Control value in Name=value[,value...] format (repeatable)",
)
BindingsFileOption = typer.Option(
    None,
    "--bindings-file",
    exists=True,
    help="Path to bindings file (JSON, YAML, or TOML)",
)
CatalogTypeOption = typer.Option(
    None,
    "--catalog-type",
    help="Column catalog provider (default: ddl, or from config)",
)
DdlFolderOption = typer.Option(
    None,
    "--ddl-folder",
    exists=True,
    file_okay=False,
    help="Folder of CREATE TABLE scripts for the ddl catalog",
)
RuntimeSchemaOption = typer.Option(None, "--runtime-schema", help="Runtime schema name")
BaseSchemaOption = typer.Option(None, "--base-schema", help="Workspace base schema name")
WriteSchemaOption = typer.Option(None, "--write-schema", help="Workspace write schema name")
ReadSchemaOption = typer.Option(None, "--read-schema", help="Workspace read schema name")
PreferCteOption = typer.Option(
    None,
    "--prefer-cte/--inline-overlays",
    help="Hoist overlays into a WITH clause when the dialect supports it",
)


@app.callback()
def main():
    """sql-overlay - overlay-aware SQL template compiler."""
    pass


@app.command("compile")
def compile_command(
    template_name: str = typer.Argument(..., help="Name of the template to compile"),
    templates: Optional[List[Path]] = TemplatesOption,
    context: Optional[str] = ContextOption,
    dialect: Optional[str] = DialectOption,
    bind_style: Optional[str] = BindStyleOption,
    param: Optional[List[str]] = ParamOption,
    control: Optional[List[str]] = ControlOption,
    bindings_file: Optional[Path] = BindingsFileOption,
    catalog_type: Optional[str] = CatalogTypeOption,
    ddl_folder: Optional[Path] = DdlFolderOption,
    runtime_schema: Optional[str] = RuntimeSchemaOption,
    base_schema: Optional[str] = BaseSchemaOption,
    write_schema: Optional[str] = WriteSchemaOption,
    read_schema: Optional[str] = ReadSchemaOption,
    prefer_cte: Optional[bool] = PreferCteOption,
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        "-f",
        help="Output format: 'text' or 'json' (default: text, or from config)",
    ),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output-file",
        "-o",
        help="Write output to file instead of stdout",
    ),
) -> None:
    """
    Compile a template into SQL for the runtime or workspace context.

    Configuration can be set in sqloverlay.toml in the current directory.
    CLI arguments override configuration file values.

    Examples:

        # Runtime SQL with an inlined parameter list
        sqloverlay compile CatalogEntryById -T templates/ --param UniqueID=10683,10684

        # Workspace SQL merging base and write schemas
        sqloverlay compile CatalogEntryById -c workspace \\
            --base-schema DB2INST1 --write-schema WCW101

        # Positional bind parameters as JSON
        sqloverlay compile CatalogEntryById --bind-style qmark -f json
    """
    config = load_config()
    output_format = output_format or config.output_format or "text"
    if output_format not in ["text", "json"]:
        _fail(f"Invalid output format '{output_format}'. Use 'text' or 'json'.")

    try:
        statement = _compile(
            config,
            template_name,
            templates,
            context,
            dialect,
            bind_style,
            param,
            control,
            bindings_file,
            catalog_type,
            ddl_folder,
            runtime_schema,
            base_schema,
            write_schema,
            read_schema,
            prefer_cte,
        )

        if output_format == "text":
            if output_file:
                from rich.console import Console as FileConsole

                string_buffer = StringIO()
                file_console = FileConsole(file=string_buffer, force_terminal=False)
                TextFormatter.format(statement, file_console)
                output_file.write_text(string_buffer.getvalue(), encoding="utf-8")
                console.print(f"[green]Success:[/green] SQL written to {output_file}")
            else:
                TextFormatter.format(statement, console)
        else:
            OutputWriter.write(JsonFormatter.format(statement), output_file)
            if output_file:
                console.print(f"[green]Success:[/green] SQL written to {output_file}")

    except typer.Exit:
        raise
    except Exception as e:
        _report(e)


@app.command()
def plan(
    template_name: str = typer.Argument(..., help="Name of the template to plan"),
    templates: Optional[List[Path]] = TemplatesOption,
    context: Optional[str] = ContextOption,
    dialect: Optional[str] = DialectOption,
    bind_style: Optional[str] = BindStyleOption,
    param: Optional[List[str]] = ParamOption,
    control: Optional[List[str]] = ControlOption,
    bindings_file: Optional[Path] = BindingsFileOption,
    catalog_type: Optional[str] = CatalogTypeOption,
    ddl_folder: Optional[Path] = DdlFolderOption,
    runtime_schema: Optional[str] = RuntimeSchemaOption,
    base_schema: Optional[str] = BaseSchemaOption,
    write_schema: Optional[str] = WriteSchemaOption,
    read_schema: Optional[str] = ReadSchemaOption,
    prefer_cte: Optional[bool] = PreferCteOption,
) -> None:
    """
    Show where each WHERE predicate of a template ends up.

    Examples:

        # Pushdown decisions for the workspace context
        sqloverlay plan AttributeValues -c workspace --control LANGUAGES=-1,-2
    """
    config = load_config()
    try:
        statement = _compile(
            config,
            template_name,
            templates,
            context,
            dialect,
            bind_style,
            param,
            control,
            bindings_file,
            catalog_type,
            ddl_folder,
            runtime_schema,
            base_schema,
            write_schema,
            read_schema,
            prefer_cte,
        )
        PlanTextFormatter.format(statement, console)
    except typer.Exit:
        raise
    except Exception as e:
        _report(e)


@app.command("templates")
def templates_command(
    templates: Optional[List[Path]] = TemplatesOption,
) -> None:
    """
    List the templates that load, and report blocks that do not.

    Examples:

        sqloverlay templates -T templates/
    """
    config = load_config()
    try:
        paths = templates or [Path(p) for p in config.templates or []]
        if not paths:
            _fail("No templates given. Use --templates or set 'templates' in sqloverlay.toml")
        registry = TemplateRegistry.from_paths(expand_paths(paths, TEMPLATE_PATTERN))
        TemplateListFormatter.format(registry.templates, registry.skipped, console)
    except typer.Exit:
        raise
    except Exception as e:
        _report(e)


def _report(error: Exception) -> None:
    """Map an exception to an error message and exit code 1."""
    if isinstance(error, MissingBindingError):
        kind = "caller" if error.is_caller_error else "configuration"
        _fail(f"{error} ({kind} error)")
    if isinstance(error, (CompilationError, CatalogError)):
        _fail(str(error))
    if isinstance(error, ValidationError):
        _fail(f"Invalid settings: {error}")
    if isinstance(error, (FileNotFoundError, ValueError)):
        _fail(str(error))
    _fail(f"Unexpected error: {error}")


if __name__ == "__main__":
    app()
