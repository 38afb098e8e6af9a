"""Execution context for document expansion.

An :class:`ExecutionContext` is the set of names visible at one point of the
document tree. Contexts are immutable: every ``each`` iteration and every
template invocation derives a new one with :meth:`ExecutionContext.child`
or :meth:`ExecutionContext.for_template`, so loop variables never leak out
of their iteration and template parameters never leak back into the caller.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from pipeline_studio.dsl.resources import ResourceConfig

__all__ = ["ExecutionContext"]


@dataclass(frozen=True)
class ExecutionContext:
    """Names and locations visible while expanding a node.

    Attributes:
        parameters: Parameter values (document defaults overlaid by overrides).
        variables: Compile-time view of ``variables``.
        resources: Merged resource configuration.
        locals: Loop variables (``item`` and ``itemIndex``) and caller locals.
        base_dir: Directory relative template paths resolve against.
        repository_base_dir: Root of the repository the current document
            belongs to, or None when unknown.
        resource_locations: Alias to local path map used when a repository
            resource has no location of its own.
        workspace_dir: Directory substituted for ``${workspaceFolder}``.
        template_stack: Template files currently being expanded, outermost
            first.

    Example:
        >>> ctx = ExecutionContext(parameters={"env": "dev"})
        >>> inner = ctx.child({"item": "a", "itemIndex": 0})
        >>> inner.locals["item"], "item" in ctx.locals
        ('a', False)
    """

    parameters: Mapping[str, Any] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    locals: Mapping[str, Any] = field(default_factory=dict)
    base_dir: str = field(default_factory=os.getcwd)
    repository_base_dir: str | None = None
    resource_locations: Mapping[str, str] = field(default_factory=dict)
    workspace_dir: str | None = None
    template_stack: tuple[str, ...] = ()

    @property
    def template_depth(self) -> int:
        return len(self.template_stack)

    def child(self, locals: Mapping[str, Any]) -> ExecutionContext:
        """Derive a context with extra loop locals."""
        return replace(self, locals={**self.locals, **locals})

    def for_template(
        self,
        parameters: Mapping[str, Any],
        template_path: str,
        repository_base_dir: str | None = None,
    ) -> ExecutionContext:
        """Derive the context a template file is expanded in.

        The caller's parameters stay visible underneath the template's own,
        relative paths resolve against the template's directory and the
        template is pushed onto :attr:`template_stack`.
        """
        return replace(
            self,
            parameters={**self.parameters, **parameters},
            locals=dict(self.locals),
            base_dir=os.path.dirname(template_path) or self.base_dir,
            repository_base_dir=(
                repository_base_dir
                if repository_base_dir is not None
                else self.repository_base_dir
            ),
            template_stack=(*self.template_stack, template_path),
        )
