"""Evaluation of ``${{ }}`` expressions against an execution context.

Evaluation is fail-soft. Unknown identifiers, missing fields, calls to
unknown functions and even unparseable text never raise:

1. The text is parsed with the expression grammar and the AST evaluated.
2. If it does not parse, it is read as a dotted path such as
   ``parameters.my.value[0]`` and walked through the context.
3. If that resolves to nothing and the text does not look like a context
   path, the text itself is the value (``${{ Hosted Ubuntu 1604 }}``
   yields ``Hosted Ubuntu 1604``).

Identifier lookup order: the keywords ``true``/``false``/``null``/``undefined``
(any case), loop locals, parameters by bare name, variables by bare name,
then the roots ``parameters``, ``variables``, ``resources`` and ``locals``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pipeline_studio.dsl.expressions.ast import (
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Identifier,
    Literal,
    Logical,
    Member,
    Node,
    ObjectLiteral,
    Unary,
)
from pipeline_studio.dsl.expressions.errors import ExpressionSyntaxError
from pipeline_studio.dsl.expressions.functions import FunctionLibrary, compare_values
from pipeline_studio.dsl.expressions.parser import EMBEDDED_EXPRESSION, parse_expression
from pipeline_studio.dsl.values import (
    UNDEFINED,
    TemplateReference,
    get_member,
    normalize_number,
    to_boolean,
    to_json,
    to_number,
    to_string,
)
from pipeline_studio.logging import get_logger

if TYPE_CHECKING:
    from pipeline_studio.dsl.context import ExecutionContext

__all__ = ["ExpressionEvaluator"]

logger = get_logger(__name__)

_KEYWORDS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": UNDEFINED,
}

_INDEX_SEGMENT = re.compile(r"\[(\d+)\]")
_QUOTED_SEGMENT = re.compile(r"\[(?:'|\")([^'\"]+)(?:'|\")\]")
_CONTEXT_PATH = re.compile(r"^[A-Za-z_]\w*[.\[]")

_COMPARISONS = {
    "==": lambda c: c == 0,
    "===": lambda c: c == 0,
    "!=": lambda c: c != 0,
    "!==": lambda c: c != 0,
    "<": lambda c: c < 0,
    "<=": lambda c: c <= 0,
    ">": lambda c: c > 0,
    ">=": lambda c: c >= 0,
}


def _operand(value: Any) -> int | float:
    number = to_number(value)
    if isinstance(number, float) and math.isnan(number):
        return 0
    return number


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    a = _operand(left)
    b = _operand(right)
    if op == "+":
        return normalize_number(a + b)
    if op == "-":
        return normalize_number(a - b)
    if op == "*":
        return normalize_number(a * b)
    if b == 0:
        return None
    if op == "/":
        return normalize_number(a / b)
    return normalize_number(math.fmod(a, b))


class ExpressionEvaluator:
    """Evaluates expression text and substitutes embedded expressions.

    Parsed ASTs are memoized per evaluator (unparseable text is cached as a
    miss so the grammar runs once per distinct expression).

    Args:
        functions: Builtin library, which also owns ``counter`` state.
        cache: Optional shared AST cache.
    """

    def __init__(
        self,
        functions: FunctionLibrary | None = None,
        cache: dict[str, Node | None] | None = None,
    ) -> None:
        self.functions = functions or FunctionLibrary()
        self._cache: dict[str, Node | None] = {} if cache is None else cache

    def parse(self, text: str) -> Node | None:
        """Return the cached AST for ``text`` or None if it does not parse."""
        if text in self._cache:
            return self._cache[text]
        try:
            node: Node | None = parse_expression(text)
        except ExpressionSyntaxError as e:
            logger.debug("expression_parse_fallback", expression=text, error=e.message)
            node = None
        self._cache[text] = node
        return node

    def evaluate(self, expression: Any, ctx: ExecutionContext) -> Any:
        """Evaluate an expression body (no ``${{ }}`` wrapper).

        Returns:
            The typed result, UNDEFINED when nothing resolved.
        """
        if expression is None or expression is UNDEFINED:
            return UNDEFINED
        text = to_string(expression).strip()
        if not text:
            return UNDEFINED

        node = self.parse(text)
        if node is not None:
            return self.evaluate_node(node, ctx)

        resolved = self.resolve_path(text, ctx)
        if resolved is not UNDEFINED:
            return resolved
        if _CONTEXT_PATH.match(text):
            return UNDEFINED
        return text

    def substitute(self, text: Any, ctx: ExecutionContext) -> Any:
        """Replace each embedded ``${{ expr }}`` in ``text`` with its value.

        Null and undefined become empty text; mappings and lists become
        compact JSON. Non-string input is returned unchanged, as are
        ``$(var)`` macros and ``$[ expr ]`` runtime expressions.
        """
        if not isinstance(text, str) or "${{" not in text:
            return text

        def replace(match: re.Match[str]) -> str:
            value = self.evaluate(match.group(1), ctx)
            if value is None or value is UNDEFINED:
                return ""
            if isinstance(value, (Mapping, list, tuple, TemplateReference)):
                return to_json(value)
            return to_string(value)

        return EMBEDDED_EXPRESSION.sub(replace, text)

    # -------------------------------------------------------------------------
    # AST evaluation
    # -------------------------------------------------------------------------

    def evaluate_node(self, node: Node, ctx: ExecutionContext) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Identifier):
            return self.resolve_identifier(node.name, ctx)
        if isinstance(node, Member):
            return self._member(node, ctx)
        if isinstance(node, Call):
            return self._call(node, ctx)
        if isinstance(node, Unary):
            return self._unary(node.op, self.evaluate_node(node.argument, ctx))
        if isinstance(node, Binary):
            return self._binary(
                node.op,
                self.evaluate_node(node.left, ctx),
                self.evaluate_node(node.right, ctx),
            )
        if isinstance(node, Logical):
            return self._logical(node, ctx)
        if isinstance(node, Conditional):
            branch = node.consequent if to_boolean(
                self.evaluate_node(node.test, ctx)
            ) else node.alternate
            return self.evaluate_node(branch, ctx)
        if isinstance(node, ArrayLiteral):
            return [self.evaluate_node(element, ctx) for element in node.elements]
        if isinstance(node, ObjectLiteral):
            return {
                key if isinstance(key, str) else to_string(key): self.evaluate_node(
                    value, ctx
                )
                for key, value in node.properties
            }
        return UNDEFINED

    def resolve_identifier(self, name: str, ctx: ExecutionContext) -> Any:
        lowered = name.lower()
        if lowered in _KEYWORDS:
            return _KEYWORDS[lowered]
        if name in ctx.locals:
            return ctx.locals[name]
        if name in ctx.parameters:
            return ctx.parameters[name]
        if name in ctx.variables:
            return ctx.variables[name]
        return self._root(name, ctx)

    def resolve_path(self, text: str, ctx: ExecutionContext) -> Any:
        """Resolve ``a.b[0]['c']`` style paths without the grammar."""
        sanitized = _QUOTED_SEGMENT.sub(r".\1", _INDEX_SEGMENT.sub(r".\1", text))
        segments = [segment for segment in sanitized.split(".") if segment]
        if not segments:
            return UNDEFINED

        first, rest = segments[0], segments[1:]
        if first in ctx.locals:
            current = ctx.locals[first]
        else:
            current = self._root(first, ctx)
            if current is UNDEFINED:
                if first in ctx.parameters:
                    current = ctx.parameters[first]
                elif first in ctx.variables:
                    current = ctx.variables[first]
                else:
                    return UNDEFINED

        for segment in rest:
            current = get_member(current, segment)
            if current is UNDEFINED:
                return UNDEFINED
        return current

    def _root(self, name: str, ctx: ExecutionContext) -> Any:
        if name == "parameters":
            return ctx.parameters
        if name == "variables":
            return ctx.variables
        if name == "resources":
            return ctx.resources.to_value()
        if name == "locals":
            return ctx.locals
        return UNDEFINED

    def _member(self, node: Member, ctx: ExecutionContext) -> Any:
        target = self.evaluate_node(node.object, ctx)
        if target is None or target is UNDEFINED:
            return UNDEFINED
        return get_member(target, self._property_name(node, ctx))

    def _property_name(self, node: Member, ctx: ExecutionContext) -> Any:
        if not node.computed and isinstance(node.property, Identifier):
            return node.property.name
        return self.evaluate_node(node.property, ctx)

    def _call(self, node: Call, ctx: ExecutionContext) -> Any:
        callee = node.callee
        args = [self.evaluate_node(argument, ctx) for argument in node.arguments]

        if isinstance(callee, Identifier):
            value = self.resolve_identifier(callee.name, ctx)
            if callable(value):
                return self._invoke(callee.name, value, args)
            return self.functions.call(callee.name, args)

        if isinstance(callee, Member):
            target = self.evaluate_node(callee.object, ctx)
            if target is None or target is UNDEFINED:
                return UNDEFINED
            prop = self._property_name(callee, ctx)
            if prop is None or prop is UNDEFINED:
                return UNDEFINED
            fn = get_member(target, prop)
            if callable(fn):
                return self._invoke(to_string(prop), fn, args)
            return self.functions.call(to_string(prop), args)

        value = self.evaluate_node(callee, ctx)
        if callable(value):
            return self._invoke("<anonymous>", value, args)
        return UNDEFINED

    def _invoke(self, name: str, fn: Any, args: list[Any]) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            logger.debug("expression_callable_failed", function=name, error=str(e))
            return UNDEFINED

    def _unary(self, op: str, value: Any) -> Any:
        if op == "!":
            return not to_boolean(value)
        if op == "-":
            return normalize_number(-to_number(value))
        return normalize_number(to_number(value))

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        if op in _COMPARISONS:
            return _COMPARISONS[op](compare_values(left, right))
        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            return to_string(left) + to_string(right)
        return _arithmetic(op, left, right)

    def _logical(self, node: Logical, ctx: ExecutionContext) -> Any:
        left = self.evaluate_node(node.left, ctx)
        if node.op == "&&":
            return self.evaluate_node(node.right, ctx) if to_boolean(left) else left
        if node.op == "||":
            return left if to_boolean(left) else self.evaluate_node(node.right, ctx)
        if left is not None and left is not UNDEFINED:
            return left
        return self.evaluate_node(node.right, ctx)
