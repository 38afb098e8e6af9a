"""CLI utilities for pipeline-studio.

Context, exit codes and message formatting shared by the commands.
"""

from __future__ import annotations

from pipeline_studio.cli.context import CLIContext, ExitCode
from pipeline_studio.cli.output import format_error, format_success

__all__ = [
    "CLIContext",
    "ExitCode",
    "format_error",
    "format_success",
]
