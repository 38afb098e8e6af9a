"""Filesystem helpers shared by the template resolver and configuration."""

from __future__ import annotations

from pipeline_studio.utils.paths import (
    expand_user_home,
    first_non_empty,
    resolve_configured_path,
    substitute_path_variables,
)

__all__ = [
    "expand_user_home",
    "first_non_empty",
    "resolve_configured_path",
    "substitute_path_variables",
]
