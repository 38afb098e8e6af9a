"""Template and repository resolution.

A template reference names a YAML file either relative to the current
document (``template: steps/build.yml``) or inside a repository resource
(``template: steps/build.yml@templates``). This module turns the reference
into a file on disk and loads it; the expander takes care of parameters and
of expanding the loaded document.

Resolution of ``path@alias``:

1. The alias is looked up in the merged ``resources.repositories``. An entry
   without a location is supplemented from the caller's resource locations;
   an alias only present in the resource locations gets a minimal entry.
   The ``self`` alias always means the current repository.
2. The location gets expression substitution, then ``${workspaceFolder}``,
   ``${env:NAME}``, ``${NAME}`` and ``~`` substitution. Relative locations
   are anchored at the current document directory and a location naming a
   file stands for that file's directory.
3. The template path is looked up under the repository root, then under
   the current document directory.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pipeline_studio.constants import (
    DEFAULT_MAX_TEMPLATE_DEPTH,
    EXPRESSION_OPEN,
    PARAMETERS_KEY,
    SELF_REPOSITORY_ALIAS,
    TEMPLATE_BODY_KEYS,
)
from pipeline_studio.dsl.errors import (
    PipelineParseError,
    RepositoryLocationError,
    RepositoryNotFoundError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from pipeline_studio.dsl.resources import RepositoryEntry
from pipeline_studio.dsl.serialization.parser import load_pipeline_yaml
from pipeline_studio.dsl.values import UNDEFINED
from pipeline_studio.logging import get_logger
from pipeline_studio.utils.paths import substitute_path_variables

if TYPE_CHECKING:
    from pipeline_studio.dsl.context import ExecutionContext
    from pipeline_studio.dsl.expressions.evaluator import ExpressionEvaluator

__all__ = [
    "RepositoryReference",
    "ResolvedTemplate",
    "TemplateResolver",
    "extract_template_body",
    "parse_repository_reference",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RepositoryReference:
    """The two halves of a ``path@alias`` template reference."""

    template_path: str
    alias: str

    def __str__(self) -> str:
        return f"{self.template_path}@{self.alias}"


@dataclass(frozen=True, slots=True)
class ResolvedTemplate:
    """A template reference mapped onto the filesystem.

    Attributes:
        reference: The reference as written, used in messages.
        path: Absolute path of the template file.
        repository_base_dir: Root of the repository the file belongs to,
            or None when unknown.
    """

    reference: str
    path: str
    repository_base_dir: str | None = None


def parse_repository_reference(value: Any) -> RepositoryReference | None:
    """Split ``path@alias`` at the last ``@``.

    Returns None when there is no ``@`` or either side is empty after
    trimming.

    Example:
        >>> parse_repository_reference("jobs/build.yml@templates")
        RepositoryReference(template_path='jobs/build.yml', alias='templates')
        >>> parse_repository_reference("jobs/build.yml") is None
        True
    """
    if not isinstance(value, str):
        return None
    at = value.rfind("@")
    if at <= 0 or at == len(value) - 1:
        return None
    template_path = value[:at].strip()
    alias = value[at + 1 :].strip()
    if not template_path or not alias:
        return None
    return RepositoryReference(template_path, alias)


def extract_template_body(expanded: Any) -> list[Any]:
    """Return the items an expanded template document contributes.

    A list document is used as-is. A mapping contributes the first present
    of ``stages``, ``jobs``, ``steps``, ``variables``, ``stage``, ``job``,
    ``deployment`` and ``deployments`` (a single value is wrapped), or
    itself minus ``parameters`` when none is present.
    """
    if not expanded:
        return []
    if isinstance(expanded, list):
        return expanded
    if not isinstance(expanded, Mapping):
        return []

    body = {k: v for k, v in expanded.items() if k != PARAMETERS_KEY}
    for key in TEMPLATE_BODY_KEYS:
        if key in body:
            value = body[key]
            if isinstance(value, list):
                return value
            if value is not UNDEFINED:
                return [value]
    return [body] if body else []


class TemplateResolver:
    """Maps template references to files and loads them.

    Resolved repository locations are cached per resolver when their text
    holds no expressions.

    Args:
        evaluator: Evaluator used to substitute expressions in locations.
        max_depth: Maximum template nesting before
            :class:`TemplateRecursionError`.
        environ: Environment for ``${env:NAME}`` substitution, ``os.environ``
            by default.
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator,
        max_depth: int = DEFAULT_MAX_TEMPLATE_DEPTH,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.max_depth = max_depth
        self._environ = environ
        self._location_cache: dict[tuple[str, str | None], str] = {}

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    def resolve_repository_entry(
        self, alias: str, ctx: ExecutionContext
    ) -> RepositoryEntry | None:
        entry = ctx.resources.get(alias)
        external = ctx.resource_locations.get(alias)

        if entry is not None:
            if external and not entry.location:
                return entry.with_location(external)
            return entry
        if external:
            return RepositoryEntry({"repository": alias, "location": external})
        return None

    def resolve_repository_location(
        self, entry: RepositoryEntry, ctx: ExecutionContext
    ) -> str | None:
        """Return the substituted location text of ``entry``, or None."""
        location = entry.location
        if location is None:
            return None

        cache_key = (location, ctx.workspace_dir)
        cacheable = EXPRESSION_OPEN not in location
        if cacheable and cache_key in self._location_cache:
            return self._location_cache[cache_key]

        replaced = self.evaluator.substitute(location, ctx)
        if not isinstance(replaced, str) or not replaced.strip():
            return None
        resolved = substitute_path_variables(
            replaced.strip(), ctx.workspace_dir, self._environ
        )
        if cacheable:
            self._location_cache[cache_key] = resolved
        return resolved

    def resolve_repository_base_directory(
        self, location: str, ctx: ExecutionContext
    ) -> str:
        """Anchor ``location`` and reduce a file location to its directory."""
        absolute = os.path.normpath(
            location if os.path.isabs(location) else os.path.join(ctx.base_dir, location)
        )
        if os.path.isfile(absolute):
            return os.path.dirname(absolute)
        return absolute

    def resolve_template_within_repository(
        self,
        template_path: str,
        current_dir: str | None,
        repository_base_dir: str | None,
    ) -> str | None:
        """Find ``template_path`` under the repository root or ``current_dir``.

        A leading slash means the repository root. Returns the first
        candidate that is an existing file, or None.
        """
        parts = [p for p in template_path.replace("\\", "/").split("/") if p]
        if not parts:
            return None

        bases: list[str] = []
        if repository_base_dir:
            bases.append(os.path.normpath(repository_base_dir))
        if current_dir and os.path.normpath(current_dir) not in bases:
            bases.append(os.path.normpath(current_dir))

        for base in bases:
            candidate = os.path.abspath(os.path.join(base, *parts))
            if os.path.isfile(candidate):
                return candidate
        return None

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def resolve(self, template: str, ctx: ExecutionContext) -> ResolvedTemplate:
        """Resolve a substituted template reference to a file.

        Raises:
            RepositoryNotFoundError: The alias is not declared anywhere.
            RepositoryLocationError: The alias has no local location.
            TemplateNotFoundError: The file does not exist.
        """
        reference = parse_repository_reference(template)

        if reference is None:
            repository_base = ctx.repository_base_dir
            path = self.resolve_template_within_repository(
                template, ctx.base_dir, repository_base
            )
            if path is None:
                path = os.path.abspath(
                    template if os.path.isabs(template) else os.path.join(ctx.base_dir, template)
                )
            display = template
        else:
            repository_base = self._repository_base(reference, template, ctx)
            path = self.resolve_template_within_repository(
                reference.template_path, ctx.base_dir, repository_base
            )
            if path is None:
                path = os.path.abspath(
                    os.path.join(repository_base, reference.template_path.lstrip("/\\"))
                )
            display = str(reference)

        if not os.path.isfile(path):
            raise TemplateNotFoundError(display, resolved_path=path)

        logger.debug("template_resolved", template=display, path=path)
        return ResolvedTemplate(display, path, repository_base)

    def _repository_base(
        self, reference: RepositoryReference, template: str, ctx: ExecutionContext
    ) -> str:
        if reference.alias == SELF_REPOSITORY_ALIAS:
            return ctx.repository_base_dir or ctx.base_dir

        entry = self.resolve_repository_entry(reference.alias, ctx)
        if entry is None:
            raise RepositoryNotFoundError(reference.alias, template)
        location = self.resolve_repository_location(entry, ctx)
        if not location:
            raise RepositoryLocationError(reference.alias, template)

        base = self.resolve_repository_base_directory(location, ctx)
        logger.debug("repository_resolved", alias=reference.alias, location=base)
        return base

    def check_recursion(self, resolved: ResolvedTemplate, ctx: ExecutionContext) -> None:
        """Refuse to re-enter a template or to nest beyond ``max_depth``.

        Raises:
            TemplateRecursionError: On a cycle or when the limit is reached.
        """
        if resolved.path in ctx.template_stack:
            raise TemplateRecursionError(resolved.reference, chain=ctx.template_stack)
        if ctx.template_depth >= self.max_depth:
            raise TemplateRecursionError(
                resolved.reference, chain=ctx.template_stack, max_depth=self.max_depth
            )

    def load(self, resolved: ResolvedTemplate) -> Any:
        """Read and parse a template file; an empty file loads as ``{}``.

        Raises:
            TemplateError: The file cannot be read or is not UTF-8 text.
            PipelineParseError: The file is not valid YAML.
        """
        try:
            text = Path(resolved.path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateError(
                f"Failed to read template '{resolved.reference}': {e}",
                template=resolved.reference,
            ) from e

        try:
            document = load_pipeline_yaml(text, file_path=resolved.path)
        except PipelineParseError as e:
            raise PipelineParseError(
                f"Failed to parse template '{resolved.reference}': {e.parse_error}",
                file_path=resolved.path,
                line_number=e.line_number,
                parse_error=e.parse_error,
            ) from e
        return {} if document is None else document
