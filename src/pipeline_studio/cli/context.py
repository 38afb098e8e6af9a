"""CLI context and exit codes for pipeline-studio."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from pipeline_studio.config import StudioConfig

__all__ = [
    "ExitCode",
    "CLIContext",
]


class ExitCode(IntEnum):
    """Exit codes for the pipeline-studio CLI.

    - 0 for success
    - 1 for any expansion or configuration failure
    - 2 for usage errors (reported by click itself)
    """

    SUCCESS = 0
    FAILURE = 1
    USAGE = 2


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global options and configuration shared by subcommands.

    Attributes:
        config: Loaded configuration.
        config_path: Path to config file (if specified via --config).
        verbosity: Verbosity level (0=default, 1=INFO, 2+=DEBUG).
        quiet: Suppress non-essential output.
    """

    config: StudioConfig
    config_path: Path | None = None
    verbosity: int = 0
    quiet: bool = False
