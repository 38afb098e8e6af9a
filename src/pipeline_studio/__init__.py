"""pipeline-studio: local expansion of Azure Pipelines YAML templates.

Example:
    >>> from pipeline_studio import expand
    >>> expand("pool: ${{ parameters.pool }}", {"parameters": {"pool": "linux"}})
    {'pool': 'linux'}
"""

from __future__ import annotations

__version__ = "0.1.0"

from pipeline_studio.dsl.engine import (  # noqa: E402
    ExpansionOptions,
    PipelineExpander,
    expand,
    expand_from_file,
    expand_to_string,
)

__all__ = [
    "ExpansionOptions",
    "PipelineExpander",
    "__version__",
    "expand",
    "expand_from_file",
    "expand_to_string",
]
