"""Recursive expansion of a pipeline document tree.

The expander walks a loaded document and applies the structural directives
found in mapping keys:

- ``${{ each VAR in COLLECTION }}`` repeats its body once per element, with
  ``VAR`` and ``VARIndex`` bound in the iteration's context.
- ``${{ if }}`` / ``${{ elseif }}`` / ``${{ else }}`` runs keep the first
  branch whose condition holds (or the ``else`` branch).
- ``${{ insert }}`` merges a mapping into its parent mapping.
- ``template:`` items in sequences are replaced by the items the template
  contributes.

Scalars that are exactly one ``${{ expr }}`` take the typed value of the
expression; other strings get embedded expressions substituted.

In preserving mode (used for template parameters and ``${{ insert }}``
values) directives are applied as usual but template references are kept
as ``{template, parameters}`` mappings so the receiving template decides
where they expand.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from itertools import islice
from typing import Any

from pipeline_studio.constants import (
    DYNAMIC_KEY,
    EACH_ITERATION_KEY_FIELDS,
    PARAMETERS_KEY,
    TEMPLATE_KEY,
)
from pipeline_studio.dsl.context import ExecutionContext
from pipeline_studio.dsl.directives import (
    Directive,
    DirectiveKind,
    is_full_expression,
    parse_directive,
    strip_expression,
)
from pipeline_studio.dsl.expressions.evaluator import ExpressionEvaluator
from pipeline_studio.dsl.parameters import (
    extract_parameters,
    normalize_template_parameters,
)
from pipeline_studio.dsl.templates import TemplateResolver, extract_template_body
from pipeline_studio.dsl.values import (
    UNDEFINED,
    TemplateReference,
    YamlMapping,
    iter_pairs,
    template_reference_of,
    to_boolean,
    to_string,
)
from pipeline_studio.logging import get_logger

__all__ = ["DocumentExpander", "normalize_collection"]

logger = get_logger(__name__)

_CONDITIONAL_KINDS = (DirectiveKind.IF, DirectiveKind.ELSEIF, DirectiveKind.ELSE)


def normalize_collection(value: Any) -> list[Any]:
    """Turn an ``each`` collection into the list of elements to visit.

    Lists pass through; mappings become ``{key, value}`` elements in order;
    anything else has no elements.
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Mapping):
        return [{"key": k, "value": v} for k, v in value.items()]
    return []


def _scalar_key(value: Any) -> str | None:
    if isinstance(value, (str, int, float, bool)):
        return to_string(value)
    return None


def _single_pair(item: Any) -> tuple[Any, Any] | None:
    if not isinstance(item, Mapping):
        return None
    pairs = iter_pairs(item)
    return pairs[0] if len(pairs) == 1 else None


class DocumentExpander:
    """Applies directives, expressions and template references to a tree.

    Args:
        evaluator: Expression evaluator (owns the AST cache and counters).
        resolver: Template resolver.
        preserve_templates: Keep template references instead of resolving
            them.
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator,
        resolver: TemplateResolver,
        preserve_templates: bool = False,
    ) -> None:
        self.evaluator = evaluator
        self.resolver = resolver
        self.preserve_templates = preserve_templates
        self._preserving = (
            self
            if preserve_templates
            else DocumentExpander(evaluator, resolver, preserve_templates=True)
        )

    def expand(self, node: Any, ctx: ExecutionContext) -> Any:
        """Expand any value. Unresolved scalars come back as UNDEFINED."""
        if isinstance(node, (list, tuple)):
            return self.expand_sequence(node, ctx)
        if isinstance(node, TemplateReference):
            return self._template_items(node, ctx)
        if isinstance(node, Mapping):
            if self.preserve_templates:
                reference = template_reference_of(node)
                if reference is not None:
                    return self._preserve_reference(reference, ctx)
            return self.expand_mapping(node, ctx)
        return self.expand_scalar(node, ctx)

    def expand_preserving(self, node: Any, ctx: ExecutionContext) -> Any:
        """Expand ``node`` keeping template references unresolved."""
        return self._preserving.expand(node, ctx)

    # -------------------------------------------------------------------------
    # Sequences
    # -------------------------------------------------------------------------

    def expand_sequence(self, items: list[Any] | tuple[Any, ...], ctx: ExecutionContext) -> list[Any]:
        result: list[Any] = []
        index = 0
        while index < len(items):
            item = items[index]

            reference = template_reference_of(item)
            if reference is not None:
                result.extend(self._template_items(reference, ctx))
                index += 1
                continue

            directive, body = self._item_directive(item)
            if directive is not None and directive.kind is DirectiveKind.EACH:
                for iteration in self._iterations(directive, ctx):
                    result.extend(self._branch_items(body, iteration))
                index += 1
                continue

            if directive is not None and directive.kind in _CONDITIONAL_KINDS:
                run = self._conditional_run(
                    (self._item_directive(candidate) for candidate in islice(items, index, None))
                )
                taken = self._choose_branch(run, ctx)
                if taken is not None:
                    result.extend(self._branch_items(taken, ctx))
                index += len(run)
                continue

            expanded = self.expand(item, ctx)
            if expanded is UNDEFINED:
                pass
            elif isinstance(expanded, list):
                for element in expanded:
                    result.extend(self._splice(element, ctx))
            else:
                result.append(expanded)
            index += 1
        return result

    def _item_directive(self, item: Any) -> tuple[Directive | None, Any]:
        pair = _single_pair(item)
        if pair is None:
            return None, None
        return parse_directive(pair[0]), pair[1]

    def _splice(self, element: Any, ctx: ExecutionContext) -> list[Any]:
        reference = template_reference_of(element)
        if reference is None:
            return [element]
        return self._template_items(reference, ctx)

    def _branch_items(self, body: Any, ctx: ExecutionContext) -> list[Any]:
        """Expand a directive body in sequence position."""
        if isinstance(body, (list, tuple)):
            return self.expand_sequence(body, ctx)
        reference = template_reference_of(body)
        if reference is not None:
            return self._template_items(reference, ctx)
        if isinstance(body, Mapping):
            return [self.expand_mapping(body, ctx)]
        value = self.expand_scalar(body, ctx)
        return [] if value is UNDEFINED else [value]

    # -------------------------------------------------------------------------
    # Mappings
    # -------------------------------------------------------------------------

    def expand_mapping(self, mapping: Mapping[Any, Any], ctx: ExecutionContext) -> dict[Any, Any]:
        pairs = iter_pairs(mapping)
        result: dict[Any, Any] = {}
        index = 0
        while index < len(pairs):
            key, value = pairs[index]
            directive = parse_directive(key)

            if directive is not None and directive.kind is DirectiveKind.EACH:
                result.update(self._each_entries(directive, value, ctx))
                index += 1
                continue

            if directive is not None and directive.kind in _CONDITIONAL_KINDS:
                run = self._conditional_run(
                    ((parse_directive(k), v) for k, v in islice(pairs, index, None))
                )
                taken = self._choose_branch(run, ctx)
                if taken is not None:
                    result.update(self._branch_mapping(taken, ctx))
                index += len(run)
                continue

            if directive is not None and directive.kind is DirectiveKind.INSERT:
                inserted = self.expand_preserving(value, ctx)
                if isinstance(inserted, Mapping):
                    result.update(inserted)
                index += 1
                continue

            expanded = self.expand(value, ctx)
            if expanded is not UNDEFINED:
                new_key = self.evaluator.substitute(key, ctx) if isinstance(key, str) else key
                result[new_key] = expanded
            index += 1
        return result

    def _branch_mapping(self, body: Any, ctx: ExecutionContext) -> dict[Any, Any]:
        """Expand a directive body in mapping position."""
        if isinstance(body, (list, tuple)):
            merged: dict[Any, Any] = {}
            for item in self.expand_sequence(body, ctx):
                if isinstance(item, Mapping):
                    merged.update(item)
            return merged
        if isinstance(body, Mapping):
            return self.expand_mapping(body, ctx)
        value = self.expand_scalar(body, ctx)
        return {} if value is UNDEFINED else {"value": value}

    def _each_entries(self, directive: Directive, body: Any, ctx: ExecutionContext) -> dict[Any, Any]:
        merged: dict[Any, Any] = {}
        for iteration in self._iterations(directive, ctx):
            branch = self._branch_mapping(body, iteration)
            if DYNAMIC_KEY in branch:
                value = branch.pop(DYNAMIC_KEY)
                merged[self._iteration_key(directive, iteration)] = value
            merged.update(branch)
        return merged

    def _iteration_key(self, directive: Directive, ctx: ExecutionContext) -> str:
        """Key an object-each iteration stores its ``--`` value under."""
        item = ctx.locals[directive.variable]
        index = ctx.locals[f"{directive.variable}Index"]
        if item is None or item is UNDEFINED:
            return str(index)

        key = _scalar_key(item)
        if key is not None:
            return key

        if isinstance(item, Mapping):
            for field_name in EACH_ITERATION_KEY_FIELDS:
                if field_name in item:
                    key = _scalar_key(item[field_name])
                    if key is not None:
                        return key
            if "value" in item:
                key = _scalar_key(item["value"])
                if key is not None:
                    return key

        key = _scalar_key(self.evaluator.evaluate(directive.variable, ctx))
        return key if key is not None else str(index)

    # -------------------------------------------------------------------------
    # Directives
    # -------------------------------------------------------------------------

    def _iterations(self, directive: Directive, ctx: ExecutionContext) -> Iterator[ExecutionContext]:
        if not directive.variable:
            logger.debug("each_directive_malformed", collection=directive.collection)
            return
        collection = normalize_collection(
            self.evaluator.evaluate(directive.collection, ctx)
        )
        for index, element in enumerate(collection):
            yield ctx.child(
                {directive.variable: element, f"{directive.variable}Index": index}
            )

    @staticmethod
    def _conditional_run(
        candidates: Iterable[tuple[Directive | None, Any]],
    ) -> list[tuple[Directive, Any]]:
        """Collect the contiguous if/elseif/else run at the head of ``candidates``.

        The run ends before a non-conditional entry and after an ``else``; a
        later ``if`` inside the run is one more candidate branch.
        """
        run: list[tuple[Directive, Any]] = []
        for directive, body in candidates:
            if directive is None or directive.kind not in _CONDITIONAL_KINDS:
                break
            run.append((directive, body))
            if directive.kind is DirectiveKind.ELSE:
                break
        return run

    def _choose_branch(self, run: list[tuple[Directive, Any]], ctx: ExecutionContext) -> Any:
        """Return the body of the first branch taken, or None."""
        for directive, body in run:
            if directive.kind is DirectiveKind.ELSE:
                logger.debug("conditional_else_taken")
                return body
            result = self.evaluator.evaluate(directive.condition, ctx)
            logger.debug(
                "condition_evaluated",
                kind=directive.kind.value,
                condition=directive.condition,
                result=to_boolean(result),
            )
            if to_boolean(result):
                return body
        return None

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def expand_scalar(self, value: Any, ctx: ExecutionContext) -> Any:
        if not isinstance(value, str):
            return value

        trimmed = value.strip()
        if not is_full_expression(trimmed):
            return self.evaluator.substitute(value, ctx)

        result = self.evaluator.evaluate(strip_expression(trimmed), ctx)
        reference = template_reference_of(result)
        if reference is not None:
            if self.preserve_templates:
                return self._preserve_reference(reference, ctx)
            items = self._template_items(reference, ctx)
            return items[0] if len(items) == 1 else items
        if isinstance(result, list) and not self.preserve_templates and any(
            template_reference_of(item) is not None for item in result
        ):
            spliced: list[Any] = []
            for item in result:
                spliced.extend(self._splice(item, ctx))
            return spliced
        return result

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def _preserve_reference(self, reference: TemplateReference, ctx: ExecutionContext) -> dict[str, Any]:
        template = reference.template
        preserved: dict[str, Any] = {
            TEMPLATE_KEY: self.evaluator.substitute(template, ctx)
            if isinstance(template, str)
            else template
        }
        if reference.has_parameters:
            preserved[PARAMETERS_KEY] = self.expand(reference.parameters, ctx)
        return preserved

    def _template_items(self, reference: TemplateReference, ctx: ExecutionContext) -> list[Any]:
        if self.preserve_templates:
            return [self._preserve_reference(reference, ctx)]
        return self.expand_template_reference(reference, ctx)

    def expand_template_reference(
        self, reference: TemplateReference, ctx: ExecutionContext
    ) -> list[Any]:
        """Load a referenced template and return the items it contributes.

        Caller parameters are expanded in preserving mode and overlay the
        template's declared defaults. The template is expanded in a child
        context rooted at its own directory.

        Raises:
            RepositoryNotFoundError: Unknown ``@alias``.
            RepositoryLocationError: ``@alias`` without a local location.
            TemplateNotFoundError: The file does not exist.
            TemplateRecursionError: A cycle or the nesting limit.
            PipelineParseError: The template is not valid YAML.
        """
        raw = reference.template
        template = (
            self.evaluator.substitute(raw, ctx)
            if isinstance(raw, str)
            else self.expand_scalar(raw, ctx)
        )
        if not isinstance(template, str) or not template.strip():
            logger.debug("template_reference_skipped", template=to_string(raw))
            return []
        template = template.strip()

        resolved = self.resolver.resolve(template, ctx)
        self.resolver.check_recursion(resolved, ctx)
        document = self.resolver.load(resolved)

        parameters = extract_parameters(document)
        if reference.has_parameters:
            provided = normalize_template_parameters(
                self.expand_preserving(reference.parameters, ctx)
            )
            parameters.update(
                {k: v for k, v in provided.items() if v is not UNDEFINED}
            )

        child = ctx.for_template(parameters, resolved.path, resolved.repository_base_dir)
        logger.debug(
            "template_expanding",
            template=resolved.reference,
            path=resolved.path,
            depth=child.template_depth,
        )

        if isinstance(document, Mapping):
            document = YamlMapping(
                (k, v) for k, v in iter_pairs(document) if k != PARAMETERS_KEY
            )
        return extract_template_body(self.expand(document, child))
