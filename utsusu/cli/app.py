"""Main CLI application."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from ..context.builder import build_context
from ..core.errors import StampError
from ..core.models import EntryKind, MaterializationResult, StampOptions, SymlinkPolicy
from ..pipeline import default_destination, stamp
from ..rendering.capability import Renderer
from ..rendering.engine import available_engines, get_renderer
from ..settings import ConfigFileError, Settings, UserConfig, load_settings
from ..templates.template import Template, load_template
from .parsers import parse_conflict_policy, parse_file_mode, parse_variables

logger = logging.getLogger(__name__)

CONFIG_ERROR_EXIT_CODE = 2

app = typer.Typer(
    name="utsusu",
    help="Stamp out files and directory trees from named templates.",
    no_args_is_help=True,
)

TemplatesDirOption = Annotated[
    str,
    typer.Option(
        "--templates-dir",
        "-t",
        help="Directory containing templates (default: UTSUSU_TEMPLATES_DIR or the per-user data directory).",
        metavar="DIR",
    ),
]
ConfigOption = Annotated[
    str,
    typer.Option(
        "--config",
        "-c",
        help="User configuration file (default: UTSUSU_CONFIG_FILE or the per-user config directory).",
        metavar="FILE",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def _load_settings(config_file: str) -> tuple[Settings, UserConfig]:
    try:
        return load_settings(Path(config_file) if config_file else None)
    except ConfigFileError as e:
        typer.echo(f"Error [config]: {e}", err=True)
        raise typer.Exit(code=CONFIG_ERROR_EXIT_CODE) from e


def _fail(error: StampError) -> typer.Exit:
    typer.echo(f"Error [{error.kind}]: {error}", err=True)
    if error.result is not None and error.result.written:
        typer.echo("Written before the error (not rolled back):", err=True)
        for path in error.result.written:
            typer.echo(f"  {path}", err=True)
    return typer.Exit(code=error.exit_code)


def _merge_variables(
    template: Template, configured: dict[str, str], cli_variables: dict[str, str]
) -> dict[str, str]:
    """Caller overrides for ``stamp``.

    Precedence is user config < template defaults < ``--var``, so configured
    values only fill names the template gives no default.
    """
    defaults = template.defaults
    values = {key: value for key, value in configured.items() if key not in defaults}
    values.update(cli_variables)
    return values


def prompt_for_variables(
    template: Template, values: dict[str, str], fixed: set[str]
) -> dict[str, str]:
    """Ask for every declared variable not fixed on the command line.

    An empty answer keeps the shown default.
    """
    answers: dict[str, str] = {}
    if template.manifest is None:
        return answers
    for name, default in template.manifest.variables.items():
        if name in fixed:
            continue
        shown = values.get(name, default)
        if shown is None:
            answers[name] = typer.prompt(name)
        else:
            answers[name] = typer.prompt(name, default=shown)
    return answers


def prompt_for_output(
    template: Template, variables: dict[str, str], renderer: Renderer
) -> Path:
    context = build_context(template.defaults, variables, template.required)
    default = default_destination(template, context, renderer)
    label = "Output File" if template.output_kind is EntryKind.FILE else "Output Directory"
    answer = typer.prompt(label, default=str(default))
    return Path(answer)


def _report(result: MaterializationResult, mode: EntryKind) -> None:
    if mode is EntryKind.FILE:
        if result.written:
            typer.echo(f"Template written to '{result.written[0]}'")
        else:
            typer.echo(f"Left existing file untouched: '{result.skipped[0]}'")
        return

    files = [p for p in result.written if not p.is_dir()]
    typer.echo(f"{len(files)} file(s) written to '{result.destination}'")
    if result.skipped:
        typer.echo(f"{len(result.skipped)} existing entr(ies) left untouched")


@app.command("stamp")
def stamp_command(
    name: Annotated[str, typer.Argument(help="Name of the template to stamp.", metavar="NAME")],
    output: Annotated[
        str,
        typer.Option(
            "--output",
            "-o",
            help="Output file or directory (default: the template's output name in cwd).",
            metavar="PATH",
        ),
    ] = "",
    variables: Annotated[
        list[str],
        typer.Option(
            "--var",
            "-D",
            help="Set a template variable (format: KEY=VALUE). Repeatable.",
            metavar="KEY=VALUE",
        ),
    ] = [],
    templates_dir: TemplatesDirOption = "",
    config_file: ConfigOption = "",
    on_conflict: Annotated[
        str,
        typer.Option(
            "--on-conflict",
            help="What to do with existing outputs: fail, skip or overwrite (default: fail).",
            metavar="POLICY",
        ),
    ] = "",
    follow_symlinks: Annotated[
        bool,
        typer.Option("--follow-symlinks", help="Follow symlinks inside templates."),
    ] = False,
    parents: Annotated[
        bool,
        typer.Option("--parents", help="Create missing parent directories of the output."),
    ] = False,
    into: Annotated[
        bool,
        typer.Option("--into", help="Treat OUTPUT as a directory for single-file templates."),
    ] = False,
    file_mode: Annotated[
        str,
        typer.Option(
            "--mode",
            help="File permissions in octal (default: copied from the template).",
            metavar="OCTAL",
        ),
    ] = "",
    engine: Annotated[
        str,
        typer.Option(
            "--engine",
            help=f"Rendering engine: {', '.join(available_engines())} (default: jinja).",
            metavar="ENGINE",
        ),
    ] = "",
    interactive: Annotated[
        Optional[bool],
        typer.Option(
            "--input/--no-input",
            help="Prompt for variables and output (default: only on a terminal).",
        ),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Render template NAME and write the result."""
    _configure_logging(verbose)
    settings, user_config = _load_settings(config_file)

    root = Path(templates_dir) if templates_dir else settings.templates_dir
    policy = parse_conflict_policy(on_conflict) if on_conflict else settings.on_conflict
    try:
        renderer = get_renderer(engine or settings.engine)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--engine") from e

    cli_variables = parse_variables(variables)

    options = StampOptions(
        conflict_policy=policy,
        symlink_policy=(
            SymlinkPolicy.FOLLOW
            if follow_symlinks or settings.follow_symlinks
            else SymlinkPolicy.REJECT
        ),
        create_parents=parents,
        into_directory=into,
        file_mode=parse_file_mode(file_mode) if file_mode else None,
    )
    if interactive is None:
        interactive = sys.stdin.isatty()

    logger.debug(f"Templates root: {root}")

    try:
        template = load_template(root, name)
        values = _merge_variables(template, user_config.variables, cli_variables)
        destination = Path(output) if output else None
        if interactive:
            values.update(prompt_for_variables(template, values, set(cli_variables)))
            if destination is None:
                destination = prompt_for_output(template, values, renderer)
        result = stamp(root, name, values, destination, options=options, renderer=renderer)
    except StampError as e:
        raise _fail(e) from e

    _report(result, template.output_kind)


@app.command("inspect")
def inspect_command(
    name: Annotated[str, typer.Argument(help="Name of the template to inspect.", metavar="NAME")],
    templates_dir: TemplatesDirOption = "",
    config_file: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Show a template's kind, output and declared variables."""
    _configure_logging(verbose)
    settings, _ = _load_settings(config_file)
    root = Path(templates_dir) if templates_dir else settings.templates_dir

    try:
        template = load_template(root, name)
    except StampError as e:
        raise _fail(e) from e

    typer.echo(f"Template: {template.ref.name} ({template.ref.kind.value})")
    typer.echo(f"Source:   {template.ref.path}")
    typer.echo(f"Output:   {template.output_kind.value} '{template.default_output_name()}'")
    if template.manifest is None or not template.manifest.variables:
        typer.echo("Variables: none declared")
        return
    typer.echo("Variables:")
    for var_name, default in template.manifest.variables.items():
        shown = "(required)" if default is None else f"[{default}]"
        typer.echo(f"  {var_name} {shown}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
