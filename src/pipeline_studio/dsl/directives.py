"""Recognition of structural ``${{ }}`` directives in mapping keys.

A directive is a mapping key whose whole text is one of::

    ${{ if <condition> }}
    ${{ elseif <condition> }}
    ${{ else }}
    ${{ each <name> in <collection> }}
    ${{ insert }}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = [
    "Directive",
    "DirectiveKind",
    "is_full_expression",
    "parse_directive",
    "strip_expression",
]


class DirectiveKind(str, Enum):
    """Kind of structural directive."""

    IF = "if"
    ELSEIF = "elseif"
    ELSE = "else"
    EACH = "each"
    INSERT = "insert"


@dataclass(frozen=True, slots=True)
class Directive:
    """A parsed directive key.

    Attributes:
        kind: Which directive the key is.
        condition: Condition text for ``if``/``elseif``.
        variable: Loop variable name for ``each``.
        collection: Collection expression text for ``each``.
    """

    kind: DirectiveKind
    condition: str = ""
    variable: str = ""
    collection: str = ""


_FULL_EXPRESSION = re.compile(r"^\$\{\{(.*)\}\}$", re.DOTALL)
_IF = re.compile(r"^\$\{\{\s*if\s+(.+?)\s*\}\}$", re.DOTALL)
_ELSEIF = re.compile(r"^\$\{\{\s*elseif\s+(.+?)\s*\}\}$", re.DOTALL)
_ELSE = re.compile(r"^\$\{\{\s*else\s*\}\}$")
_EACH = re.compile(r"^\$\{\{\s*each\s+([A-Za-z_]\w*)\s+in\s+(.+?)\s*\}\}$", re.DOTALL)
_EACH_PREFIX = re.compile(r"^\$\{\{\s*each\s+")
_INSERT = re.compile(r"^\$\{\{\s*insert\s*\}\}$")


def is_full_expression(text: Any) -> bool:
    """True when ``text`` is exactly one ``${{ ... }}`` wrapper.

    ``${{ a }}-${{ b }}`` is two embedded expressions, not a full one.
    """
    if not isinstance(text, str):
        return False
    match = _FULL_EXPRESSION.match(text)
    return match is not None and "${{" not in match.group(1)


def strip_expression(text: str) -> str:
    """Return the body of a full ``${{ ... }}`` expression, trimmed."""
    match = _FULL_EXPRESSION.match(text)
    return match.group(1).strip() if match else text.strip()


def parse_directive(key: Any) -> Directive | None:
    """Classify a mapping key, or return None for ordinary keys.

    A key that starts like ``${{ each`` but is malformed is reported as an
    EACH directive with an empty variable, so the expander can drop it.
    """
    if not isinstance(key, str):
        return None
    key = key.strip()
    if not key.startswith("${{"):
        return None

    match = _IF.match(key)
    if match:
        return Directive(DirectiveKind.IF, condition=match.group(1))
    match = _ELSEIF.match(key)
    if match:
        return Directive(DirectiveKind.ELSEIF, condition=match.group(1))
    if _ELSE.match(key):
        return Directive(DirectiveKind.ELSE)
    match = _EACH.match(key)
    if match:
        return Directive(
            DirectiveKind.EACH,
            variable=match.group(1),
            collection=match.group(2),
        )
    if _EACH_PREFIX.match(key):
        return Directive(DirectiveKind.EACH)
    if _INSERT.match(key):
        return Directive(DirectiveKind.INSERT)
    return None

