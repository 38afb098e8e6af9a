"""pipeline-studio exception hierarchy.

Domain-agnostic exceptions live here. Errors raised while expanding
pipeline documents are defined in ``pipeline_studio.dsl.errors`` and
``pipeline_studio.dsl.expressions.errors``; they all derive from
:class:`PipelineStudioError`.

All exceptions can be imported from this package:
    from pipeline_studio.exceptions import ConfigError, PipelineStudioError
"""

from __future__ import annotations

# Base exception
from pipeline_studio.exceptions.base import PipelineStudioError

# Configuration exceptions
from pipeline_studio.exceptions.config import ConfigError

__all__ = [
    "PipelineStudioError",
    "ConfigError",
]
