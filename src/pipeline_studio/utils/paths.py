"""Path substitution and resolution for repository locations.

Repository locations may be written relative to the workspace and may
reference the environment. The substitutions understood here are:

- a leading ``~`` (alone or followed by a separator) for the home directory
- ``${workspaceFolder}`` for the workspace directory
- ``${env:NAME}`` for an environment variable (empty when unset)
- ``${NAME}`` for an environment variable (left untouched when unset)
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

__all__ = [
    "expand_user_home",
    "first_non_empty",
    "resolve_configured_path",
    "substitute_path_variables",
]

_HOME_PREFIX = re.compile(r"^~(?=$|[/\\])")
_WORKSPACE_PATTERN = re.compile(r"\$\{workspaceFolder\}")
_ENV_PATTERN = re.compile(r"\$\{env:([^}]+)\}")
_NAMED_PATTERN = re.compile(r"\$\{([^}]+)\}")


def first_non_empty(*values: Any) -> str | None:
    """Return the first value that is a string with visible content."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def expand_user_home(value: str) -> str:
    """Replace a leading ``~`` with the user's home directory.

    Only the bare ``~`` prefix is handled; ``~user`` forms are treated as
    literal paths.
    """
    if not _HOME_PREFIX.match(value):
        return value
    remainder = value[1:].lstrip("/\\")
    home = Path.home()
    return str(home / remainder) if remainder else str(home)


def substitute_path_variables(
    value: str,
    workspace_dir: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Apply ``~``, ``${workspaceFolder}``, ``${env:NAME}`` and ``${NAME}``.

    Args:
        value: Raw path text.
        workspace_dir: Directory substituted for ``${workspaceFolder}``.
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        The substituted (not yet resolved) path text.
    """
    env = os.environ if environ is None else environ
    workspace = workspace_dir or ""

    result = expand_user_home(value)
    result = _WORKSPACE_PATTERN.sub(lambda _: workspace, result)
    result = _ENV_PATTERN.sub(lambda m: env.get(m.group(1), ""), result)

    def _named(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == "workspaceFolder":
            return workspace
        return env.get(name, match.group(0))

    return _NAMED_PATTERN.sub(_named, result)


def resolve_configured_path(
    raw_path: Any,
    workspace_dir: str | None = None,
    document_dir: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Turn a configured location into a normalized absolute path.

    Relative results are anchored at the workspace directory, then the
    document directory, then the current working directory, whichever is
    available first.

    Returns:
        The absolute path, or None when ``raw_path`` is not a non-empty string.
    """
    if not isinstance(raw_path, str):
        return None
    candidate = raw_path.strip()
    if not candidate:
        return None

    candidate = substitute_path_variables(candidate, workspace_dir, environ)

    if os.path.isabs(candidate):
        return os.path.normpath(candidate)

    anchor = workspace_dir or document_dir or os.getcwd()
    return os.path.normpath(os.path.join(os.path.abspath(anchor), candidate))
