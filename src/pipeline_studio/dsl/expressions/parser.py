"""Parser for the body of ``${{ ... }}`` compile-time expressions.

Supported syntax:
- ``parameters.env`` / ``variables['Build.Reason']`` - member and index access
- ``'single'`` (``''`` escapes a quote) and ``"double"`` (backslash escapes)
- ``42``, ``1.5``, ``true``, ``null`` - literals (keywords are identifiers
  resolved case-insensitively by the evaluator)
- ``eq(a, b)``, ``item.toUpper()`` - calls
- ``!a``, ``-a``, ``a + b``, ``a % b`` - unary and arithmetic operators
- ``a == b``, ``a !== b``, ``a <= b`` - comparisons
- ``a && b``, ``a || b``, ``a ?? b`` - short-circuit operators
- ``a ? b : c`` - conditional
- ``[a, b]``, ``{ key: value }`` - array and object literals

Implementation:
The grammar lives in grammar.lark and is compiled once into a Lark LALR
parser. A Transformer turns the parse tree into the frozen AST nodes of
:mod:`pipeline_studio.dsl.expressions.ast`.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from lark import Lark, Token, Transformer, UnexpectedInput

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
from pipeline_studio.dsl.values import normalize_number

__all__ = [
    "EMBEDDED_EXPRESSION",
    "parse_expression",
]

_GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"
_GRAMMAR = _GRAMMAR_PATH.read_text(encoding="utf-8")

_parser = Lark(
    _GRAMMAR,
    parser="lalr",
    start="start",
    maybe_placeholders=True,
)

#: An embedded ``${{ expr }}`` occurrence inside a larger string
EMBEDDED_EXPRESSION = re.compile(r"\$\{\{\s*(.+?)\s*\}\}")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "/": "/",
}
_ESCAPE_PATTERN = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)


def _unescape(match: re.Match[str]) -> str:
    sequence = match.group(1)
    if sequence.startswith("u") and len(sequence) == 5:
        return chr(int(sequence[1:], 16))
    return _ESCAPES.get(sequence, sequence)


def _binary(op: str) -> Callable[[_AstBuilder, list[Node]], Binary]:
    def build(self: _AstBuilder, items: list[Node]) -> Binary:
        return Binary(op, items[0], items[1])  # type: ignore[arg-type]

    return build


def _logical(op: str) -> Callable[[_AstBuilder, list[Node]], Logical]:
    def build(self: _AstBuilder, items: list[Node]) -> Logical:
        return Logical(op, items[0], items[1])  # type: ignore[arg-type]

    return build


def _unary(op: str) -> Callable[[_AstBuilder, list[Node]], Unary]:
    def build(self: _AstBuilder, items: list[Node]) -> Unary:
        return Unary(op, items[0])  # type: ignore[arg-type]

    return build


class _AstBuilder(Transformer[Token, Node]):
    """Transform the Lark parse tree into AST nodes."""

    def number(self, items: list[Token]) -> Literal:
        text = str(items[0])
        if "." in text or "e" in text or "E" in text:
            return Literal(normalize_number(float(text)))
        return Literal(int(text))

    def single_string(self, items: list[Token]) -> Literal:
        return Literal(str(items[0])[1:-1].replace("''", "'"))

    def double_string(self, items: list[Token]) -> Literal:
        return Literal(_ESCAPE_PATTERN.sub(_unescape, str(items[0])[1:-1]))

    def identifier(self, items: list[Token]) -> Identifier:
        return Identifier(str(items[0]))

    def array(self, items: list[tuple[Node, ...] | None]) -> ArrayLiteral:
        return ArrayLiteral(items[0] or ())

    def object(self, items: list[tuple[tuple[Any, Node], ...] | None]) -> ObjectLiteral:
        return ObjectLiteral(items[0] or ())

    def arguments(self, items: list[Node]) -> tuple[Node, ...]:
        return tuple(items)

    def pairs(self, items: list[tuple[Any, Node]]) -> tuple[tuple[Any, Node], ...]:
        return tuple(items)

    def pair(self, items: list[Any]) -> tuple[Any, Node]:
        key_token: Token = items[0]
        if key_token.type == "NAME":
            key: Any = str(key_token)
        else:
            key = getattr(self, key_token.type.lower())([key_token]).value
        return key, items[1]

    def member(self, items: list[Any]) -> Member:
        return Member(items[0], Identifier(str(items[1])), computed=False)

    def index(self, items: list[Node]) -> Member:
        return Member(items[0], items[1], computed=True)

    def call(self, items: list[Any]) -> Call:
        return Call(items[0], items[1] or ())

    def conditional(self, items: list[Node]) -> Conditional:
        return Conditional(items[0], items[1], items[2])

    coalesce_op = _logical("??")
    or_op = _logical("||")
    and_op = _logical("&&")

    strict_eq = _binary("===")
    strict_ne = _binary("!==")
    eq = _binary("==")
    ne = _binary("!=")
    le = _binary("<=")
    ge = _binary(">=")
    lt = _binary("<")
    gt = _binary(">")
    add = _binary("+")
    sub = _binary("-")
    mul = _binary("*")
    div = _binary("/")
    mod = _binary("%")

    not_op = _unary("!")
    neg = _unary("-")
    pos = _unary("+")


_builder = _AstBuilder()


def parse_expression(text: str) -> Node:
    """Parse an expression body (without the ``${{ }}`` wrapper).

    Args:
        text: Expression source, e.g. ``eq(parameters.env, 'prod')``.

    Returns:
        The root AST node.

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression.

    Example:
        >>> parse_expression("parameters.env")
        Member(object=Identifier(name='parameters'), property=Identifier(name='env'), computed=False)
    """
    source = text.strip()
    if not source:
        raise ExpressionSyntaxError("Empty expression", expression=text)
    try:
        tree = _parser.parse(source)
    except UnexpectedInput as e:
        raise ExpressionSyntaxError(
            "Invalid expression syntax",
            expression=source,
            position=max(getattr(e, "pos_in_stream", 0) or 0, 0),
        ) from e
    result: Node = _builder.transform(tree)
    return result
