from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click

from pipeline_studio.cli.context import CLIContext, ExitCode
from pipeline_studio.cli.output import format_error, format_success
from pipeline_studio.config import build_resource_overrides
from pipeline_studio.dsl.engine import PipelineExpander
from pipeline_studio.dsl.errors import (
    PipelineParseError,
    RepositoryError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from pipeline_studio.dsl.serialization.parser import load_pipeline_yaml
from pipeline_studio.exceptions import PipelineStudioError
from pipeline_studio.logging import bind_context, clear_context, get_logger
from pipeline_studio.utils.paths import resolve_configured_path

logger = get_logger(__name__)


def _split_assignment(raw: str, option: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected NAME=VALUE, got {raw!r}", param_hint=option)
    return name.strip(), value


def parse_parameter_value(raw: str) -> Any:
    """Read a ``--param`` value as a YAML scalar or flow collection.

    ``3`` becomes an int, ``true`` a bool and ``[a, b]`` a list; text that
    is not valid YAML is kept verbatim.
    """
    try:
        value = load_pipeline_yaml(raw)
    except PipelineParseError:
        return raw
    return "" if value is None and not raw.strip() else value


def _error_details(error: PipelineStudioError) -> tuple[list[str], str | None]:
    details: list[str] = []
    suggestion: str | None = None
    if isinstance(error, PipelineParseError):
        if error.file_path:
            details.append(f"File: {error.file_path}")
        if error.line_number:
            details.append(f"Line: {error.line_number}")
    elif isinstance(error, TemplateNotFoundError):
        if error.resolved_path:
            details.append(f"Path: {error.resolved_path}")
    elif isinstance(error, TemplateRecursionError):
        details.extend(f"via {step}" for step in error.chain)
    elif isinstance(error, RepositoryError):
        suggestion = f"Map the repository with --repo {error.alias}=PATH"
    return details, suggestion


@click.command()
@click.argument(
    "file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the expanded YAML to this file instead of stdout.",
)
@click.option(
    "-r",
    "--repo",
    "repos",
    multiple=True,
    metavar="ALIAS=PATH",
    help="Local checkout for a repository resource (repeatable).",
)
@click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    metavar="NAME=VALUE",
    help="Override a pipeline parameter (repeatable).",
)
@click.pass_context
def expand(
    ctx: click.Context,
    file: Path,
    output: Path | None,
    repos: tuple[str, ...],
    params: tuple[str, ...],
) -> None:
    """Expand templates and compile-time expressions in a pipeline file.

    Examples:
        pipeline-studio expand azure-pipelines.yml
        pipeline-studio expand azure-pipelines.yml -r templates=../templates -p env=prod
        pipeline-studio expand azure-pipelines.yml -o expanded.yml
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    config = cli_ctx.config

    parameters: dict[str, Any] = {}
    for raw in params:
        name, value = _split_assignment(raw, "--param")
        parameters[name] = parse_parameter_value(value)
    repo_paths = dict(_split_assignment(r, "--repo") for r in repos)

    document_dir = str(file.resolve().parent)
    workspace_dir = str(config.workspace_folder) if config.workspace_folder else os.getcwd()

    resources = build_resource_overrides(
        config.resource_locations, workspace_dir, document_dir
    ) or {"repositories": {}}
    for alias, raw_path in repo_paths.items():
        location = resolve_configured_path(raw_path, os.getcwd())
        if location:
            resources["repositories"][alias] = {"location": location}

    logger.info(
        "expand_command",
        file=str(file),
        repositories=sorted(resources["repositories"]),
        parameters=sorted(parameters),
    )

    bind_context(document=str(file))
    engine = PipelineExpander(max_template_depth=config.max_template_depth)
    try:
        text = engine.expand_from_file(
            file,
            {
                "parameters": parameters,
                "resources": resources,
                "workspaceFolder": workspace_dir,
            },
        )
    except PipelineStudioError as e:
        details, suggestion = _error_details(e)
        click.echo(format_error(e.message, details, suggestion), err=True)
        ctx.exit(ExitCode.FAILURE)
    except OSError as e:
        click.echo(format_error(f"Cannot read {file}: {e}"), err=True)
        ctx.exit(ExitCode.FAILURE)
    finally:
        clear_context()

    if output is None:
        click.echo(text, nl=False)
        return

    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        click.echo(format_error(f"Cannot write {output}: {e}"), err=True)
        ctx.exit(ExitCode.FAILURE)
    if not cli_ctx.quiet:
        click.echo(format_success(f"Expanded pipeline written to {output}"), err=True)
