"""Pipeline document expansion.

Loading, expression evaluation, directive expansion and template
resolution for Azure Pipelines YAML.

Example:
    >>> from pipeline_studio.dsl import PipelineExpander
    >>> engine = PipelineExpander()
    >>> engine.expand("pool: ${{ parameters.pool }}", {"parameters": {"pool": "linux"}})
    {'pool': 'linux'}
"""

from __future__ import annotations

# Context
from pipeline_studio.dsl.context import ExecutionContext

# Engine
from pipeline_studio.dsl.engine import (
    ExpansionOptions,
    PipelineExpander,
    expand,
    expand_from_file,
    expand_to_string,
)

# Errors (DSL-specific)
from pipeline_studio.dsl.errors import (
    ExpansionError,
    PipelineParseError,
    RepositoryError,
    RepositoryLocationError,
    RepositoryNotFoundError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from pipeline_studio.dsl.expander import DocumentExpander
from pipeline_studio.dsl.resources import ResourceConfig, merge_resources_config
from pipeline_studio.dsl.templates import TemplateResolver
from pipeline_studio.dsl.values import UNDEFINED, TemplateReference, YamlMapping

__all__ = [
    "UNDEFINED",
    "DocumentExpander",
    "ExecutionContext",
    "ExpansionError",
    "ExpansionOptions",
    "PipelineExpander",
    "PipelineParseError",
    "RepositoryError",
    "RepositoryLocationError",
    "RepositoryNotFoundError",
    "ResourceConfig",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRecursionError",
    "TemplateReference",
    "TemplateResolver",
    "YamlMapping",
    "expand",
    "expand_from_file",
    "expand_to_string",
    "merge_resources_config",
]
