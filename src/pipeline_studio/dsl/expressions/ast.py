"""AST nodes produced by the expression parser.

All nodes are immutable so parsed expressions can be cached and shared
between evaluations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal as TypingLiteral

__all__ = [
    "Node",
    "Literal",
    "Identifier",
    "Member",
    "Unary",
    "Binary",
    "Logical",
    "Conditional",
    "Call",
    "ArrayLiteral",
    "ObjectLiteral",
]

UnaryOperator = TypingLiteral["!", "-", "+"]
BinaryOperator = TypingLiteral[
    "==", "===", "!=", "!==", "<", "<=", ">", ">=", "+", "-", "*", "/", "%"
]
LogicalOperator = TypingLiteral["&&", "||", "??"]


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Identifier:
    name: str


@dataclass(frozen=True, slots=True)
class Member:
    """Property access.

    Attributes:
        object: Expression being accessed.
        property: Identifier for ``a.b``; any expression for ``a[expr]``.
        computed: True for bracket access.
    """

    object: Node
    property: Node
    computed: bool = False


@dataclass(frozen=True, slots=True)
class Unary:
    op: UnaryOperator
    argument: Node


@dataclass(frozen=True, slots=True)
class Binary:
    op: BinaryOperator
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    """Short-circuit operator returning one of its operands."""

    op: LogicalOperator
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Conditional:
    test: Node
    consequent: Node
    alternate: Node


@dataclass(frozen=True, slots=True)
class Call:
    callee: Node
    arguments: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True)
class ArrayLiteral:
    elements: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True)
class ObjectLiteral:
    properties: tuple[tuple[Any, Node], ...] = ()


Node = (
    Literal
    | Identifier
    | Member
    | Unary
    | Binary
    | Logical
    | Conditional
    | Call
    | ArrayLiteral
    | ObjectLiteral
)
