"""Error types raised while expanding pipeline documents.

Expression evaluation is fail-soft and never raises for unresolved values.
The errors below are the fail-hard cases: they abort the whole expansion
and no partial document is returned.

Exception Hierarchy:
    ExpansionError (base for all expansion errors)
    ├── PipelineParseError (root document or template is not valid YAML)
    ├── RepositoryError (``@alias`` template references)
    │   ├── RepositoryNotFoundError (alias not declared anywhere)
    │   └── RepositoryLocationError (alias has no local checkout)
    └── TemplateError (template files)
        ├── TemplateNotFoundError (file does not exist)
        └── TemplateRecursionError (cycle or nesting limit exceeded)
"""

from __future__ import annotations

from collections.abc import Sequence

from pipeline_studio.exceptions import PipelineStudioError

__all__ = [
    "ExpansionError",
    "PipelineParseError",
    "RepositoryError",
    "RepositoryNotFoundError",
    "RepositoryLocationError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRecursionError",
]


class ExpansionError(PipelineStudioError):
    """Base exception for every failure that aborts an expansion."""

    pass


class PipelineParseError(ExpansionError):
    """Raised when a pipeline or template file is not UTF-8 text or not valid YAML.

    Attributes:
        message: Human-readable error message.
        file_path: File being parsed, when known.
        line_number: 1-based line of the YAML error, when known.
        parse_error: The underlying PyYAML exception.

    Examples:
        ```python
        raise PipelineParseError(
            "Failed to parse YAML: mapping values are not allowed here",
            file_path="azure-pipelines.yml",
            line_number=12,
        )
        ```
    """

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        line_number: int | None = None,
        parse_error: Exception | None = None,
    ) -> None:
        self.file_path = file_path
        self.line_number = line_number
        self.parse_error = parse_error
        super().__init__(message)


class RepositoryError(ExpansionError):
    """Base class for failures resolving an ``@alias`` repository.

    Attributes:
        alias: Repository alias from the template reference.
        template: Full template reference text (``path@alias``).
    """

    def __init__(self, message: str, alias: str, template: str | None = None) -> None:
        self.alias = alias
        self.template = template
        super().__init__(message)


class RepositoryNotFoundError(RepositoryError):
    """The alias is neither a repository resource nor a configured location."""

    def __init__(self, alias: str, template: str) -> None:
        super().__init__(
            f"Repository resource '{alias}' is not defined for template '{template}'.",
            alias=alias,
            template=template,
        )


class RepositoryLocationError(RepositoryError):
    """The repository resource exists but has no usable local location."""

    def __init__(self, alias: str, template: str | None = None) -> None:
        super().__init__(
            f"Repository resource '{alias}' does not define a local location. "
            "Set a 'location' for this resource (for example via the "
            "'resource_locations' setting or '--repo alias=path').",
            alias=alias,
            template=template,
        )


class TemplateError(ExpansionError):
    """Base class for failures loading a template file.

    Attributes:
        template: Template reference as written (after expression substitution).
    """

    def __init__(self, message: str, template: str) -> None:
        self.template = template
        super().__init__(message)


class TemplateNotFoundError(TemplateError):
    """The referenced template file does not exist.

    Attributes:
        resolved_path: Filesystem path that was tried.
    """

    def __init__(self, template: str, resolved_path: str | None = None) -> None:
        self.resolved_path = resolved_path
        super().__init__(f"Template file not found: {template}", template=template)


class TemplateRecursionError(TemplateError):
    """Template expansion re-entered itself or nested too deeply.

    Attributes:
        chain: Template files being expanded when the error was raised,
            outermost first.
    """

    def __init__(
        self,
        template: str,
        chain: Sequence[str] = (),
        max_depth: int | None = None,
    ) -> None:
        self.chain = tuple(chain)
        self.max_depth = max_depth
        if max_depth is not None:
            message = (
                f"Template nesting exceeds the maximum depth of {max_depth} "
                f"while expanding '{template}'"
            )
        else:
            trail = " -> ".join([*self.chain, template])
            message = f"Recursive template reference detected: {trail}"
        super().__init__(message, template=template)
