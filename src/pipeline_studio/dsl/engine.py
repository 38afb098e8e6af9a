"""Pipeline expansion entry points.

:class:`PipelineExpander` owns the state that lives for the lifetime of one
engine: the ``counter()`` values and the parsed-expression cache. Independent
expansions should use independent engines; the module-level helpers create
a fresh engine per call.

Example:
    ```python
    from pipeline_studio.dsl.engine import PipelineExpander

    engine = PipelineExpander()
    text = engine.expand_from_file(
        "azure-pipelines.yml",
        {"parameters": {"env": "prod"}, "resourceLocations": {"templates": "../templates"}},
    )
    ```
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pipeline_studio.constants import DEFAULT_MAX_TEMPLATE_DEPTH
from pipeline_studio.dsl.context import ExecutionContext
from pipeline_studio.dsl.errors import PipelineParseError
from pipeline_studio.dsl.expander import DocumentExpander
from pipeline_studio.dsl.expressions.ast import Node
from pipeline_studio.dsl.expressions.evaluator import ExpressionEvaluator
from pipeline_studio.dsl.expressions.functions import FunctionLibrary
from pipeline_studio.dsl.parameters import extract_parameters, extract_variables
from pipeline_studio.dsl.resources import merge_resources_config
from pipeline_studio.dsl.serialization.parser import load_pipeline_yaml
from pipeline_studio.dsl.serialization.writer import dump_yaml
from pipeline_studio.dsl.templates import TemplateResolver
from pipeline_studio.logging import get_logger

__all__ = [
    "ExpansionOptions",
    "PipelineExpander",
    "expand",
    "expand_from_file",
    "expand_to_string",
]

logger = get_logger(__name__)


class ExpansionOptions(BaseModel):
    """Caller overrides for one expansion.

    Field names accept either snake_case or the camelCase spelling used by
    editor settings (``fileName``, ``baseDir``, ``resourceLocations``, ...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_name: str | None = Field(default=None, alias="fileName")
    base_dir: str | None = Field(default=None, alias="baseDir")
    repository_base_dir: str | None = Field(default=None, alias="repositoryBaseDir")
    parameters: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, Any] | None = None
    resource_locations: dict[str, str] = Field(default_factory=dict, alias="resourceLocations")
    locals: dict[str, Any] = Field(default_factory=dict)
    workspace_folder: str | None = Field(default=None, alias="workspaceFolder")

    @classmethod
    def coerce(
        cls, overrides: ExpansionOptions | Mapping[str, Any] | None
    ) -> ExpansionOptions:
        if overrides is None:
            return cls()
        if isinstance(overrides, ExpansionOptions):
            return overrides
        return cls.model_validate(dict(overrides))


class PipelineExpander:
    """Expands pipeline YAML into a fully materialized document.

    Args:
        max_template_depth: Template nesting limit.
        environ: Environment used for ``${env:NAME}`` in repository
            locations, ``os.environ`` by default.
    """

    def __init__(
        self,
        max_template_depth: int = DEFAULT_MAX_TEMPLATE_DEPTH,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.functions = FunctionLibrary()
        self._ast_cache: dict[str, Node | None] = {}
        self.evaluator = ExpressionEvaluator(self.functions, self._ast_cache)
        self.resolver = TemplateResolver(
            self.evaluator, max_depth=max_template_depth, environ=environ
        )
        self.expander = DocumentExpander(self.evaluator, self.resolver)

    def reset_counters(self) -> None:
        """Forget every ``counter()`` value issued by this engine."""
        self.functions.reset_counters()

    def build_context(self, document: Any, options: ExpansionOptions) -> ExecutionContext:
        """Build the root context for ``document``; overrides win."""
        if options.base_dir:
            base_dir = options.base_dir
        elif options.file_name:
            base_dir = os.path.dirname(options.file_name) or os.getcwd()
        else:
            base_dir = os.getcwd()
        base_dir = os.path.abspath(base_dir)

        repository_base_dir = (
            os.path.abspath(options.repository_base_dir)
            if options.repository_base_dir
            else base_dir
        )
        declared_resources = (
            document.get("resources") if isinstance(document, Mapping) else None
        )

        return ExecutionContext(
            parameters={**extract_parameters(document), **options.parameters},
            variables={**extract_variables(document), **options.variables},
            resources=merge_resources_config(declared_resources, options.resources),
            locals=dict(options.locals),
            base_dir=base_dir,
            repository_base_dir=repository_base_dir,
            resource_locations=dict(options.resource_locations),
            workspace_dir=options.workspace_folder,
        )

    def expand(
        self,
        source_text: str,
        overrides: ExpansionOptions | Mapping[str, Any] | None = None,
    ) -> Any:
        """Expand pipeline YAML text into a value tree.

        Raises:
            PipelineParseError: The source or a template is not valid YAML.
            RepositoryError: A ``path@alias`` reference cannot be resolved.
            TemplateError: A template is missing or recursion was detected.
        """
        options = ExpansionOptions.coerce(overrides)
        document = load_pipeline_yaml(source_text, file_path=options.file_name)
        if document is None:
            document = {}

        ctx = self.build_context(document, options)
        logger.info("expansion_started", file=options.file_name, base_dir=ctx.base_dir)
        result = self.expander.expand(document, ctx)
        logger.info("expansion_finished", file=options.file_name)
        return result

    def expand_to_string(
        self,
        source_text: str,
        overrides: ExpansionOptions | Mapping[str, Any] | None = None,
    ) -> str:
        """Expand pipeline YAML text and render the result as YAML."""
        return dump_yaml(self.expand(source_text, overrides))

    def expand_from_file(
        self,
        path: str | Path,
        overrides: ExpansionOptions | Mapping[str, Any] | None = None,
    ) -> str:
        """Expand a pipeline file; relative templates resolve next to it.

        Raises:
            OSError: The file cannot be read.
            PipelineParseError: The file is not UTF-8 text or not valid YAML.
        """
        file_path = os.path.abspath(path)
        try:
            source_text = Path(file_path).read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise PipelineParseError(
                f"Failed to decode pipeline as UTF-8: {e}",
                file_path=file_path,
                parse_error=e,
            ) from e
        options = ExpansionOptions.coerce(overrides).model_copy(
            update={"file_name": file_path, "base_dir": os.path.dirname(file_path)}
        )
        return self.expand_to_string(source_text, options)


def expand(
    source_text: str,
    overrides: ExpansionOptions | Mapping[str, Any] | None = None,
) -> Any:
    """Expand ``source_text`` with a fresh engine."""
    return PipelineExpander().expand(source_text, overrides)


def expand_to_string(
    source_text: str,
    overrides: ExpansionOptions | Mapping[str, Any] | None = None,
) -> str:
    return PipelineExpander().expand_to_string(source_text, overrides)


def expand_from_file(
    path: str | Path,
    overrides: ExpansionOptions | Mapping[str, Any] | None = None,
) -> str:
    return PipelineExpander().expand_from_file(path, overrides)
