"""Document values and the coercion rules shared by the expression language.

Parsed pipeline documents are trees of plain Python values with three
additions:

- :data:`UNDEFINED` marks the result of an unresolved expression. It is
  distinct from ``None`` (YAML ``null``): undefined entries are dropped from
  sequences and omitted from mappings during expansion.
- :class:`YamlMapping` keeps every ``key: value`` pair of a parsed mapping,
  duplicates included, in source order. Pipelines legitimately repeat keys
  such as ``${{ insert }}`` or the same ``${{ if ... }}`` condition.
- :class:`AliasedList` is a list whose entries can also be reached by alias,
  used for ``resources.repositories``.

The coercion helpers (:func:`to_boolean`, :func:`to_number`,
:func:`to_string`) follow the loose typing rules pipeline authors rely on,
e.g. ``'false'`` is falsy and ``'10'`` compares equal to ``10``.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from pipeline_studio.constants import PARAMETERS_KEY, TEMPLATE_KEY

__all__ = [
    "UNDEFINED",
    "AliasedList",
    "TemplateReference",
    "YamlMapping",
    "get_member",
    "is_number",
    "iter_pairs",
    "normalize_number",
    "strict_equal",
    "template_reference_of",
    "to_boolean",
    "to_json",
    "to_number",
    "to_plain",
    "to_string",
]


class _Undefined:
    """Singleton type of :data:`UNDEFINED`."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self


#: Result of an expression that resolved to nothing.
UNDEFINED: Any = _Undefined()


class YamlMapping(Mapping[Any, Any]):
    """Read-only mapping that remembers duplicate keys.

    Lookup follows the last occurrence of a key. Iteration yields each
    distinct key once, in order of first occurrence. :meth:`pairs` returns
    every raw pair, which is what the expander walks.

    Example:
        >>> m = YamlMapping([("a", 1), ("b", 2), ("a", 3)])
        >>> m["a"], list(m), len(m.pairs())
        (3, ['a', 'b'], 3)
    """

    __slots__ = ("_pairs", "_index")

    def __init__(self, pairs: Iterable[tuple[Any, Any]] = ()) -> None:
        self._pairs: list[tuple[Any, Any]] = list(pairs)
        self._index: dict[Any, Any] = {}
        for key, value in self._pairs:
            self._index[key] = value

    def __getitem__(self, key: Any) -> Any:
        return self._index[key]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k!r}: {v!r}" for k, v in self._pairs)
        return f"YamlMapping({{{inner}}})"

    def pairs(self) -> list[tuple[Any, Any]]:
        """Return all pairs in source order, duplicates included."""
        return list(self._pairs)


class AliasedList(list[Any]):
    """List that also answers member access by alias.

    ``resources.repositories.templates`` and
    ``resources.repositories[0]`` both work on the same value.
    """

    def __init__(
        self,
        items: Iterable[Any] = (),
        aliases: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(items)
        self.aliases: dict[str, Any] = dict(aliases or {})

    def by_alias(self, alias: str) -> Any:
        return self.aliases.get(alias, UNDEFINED)


@dataclass(frozen=True, slots=True)
class TemplateReference:
    """Typed view of a ``template:`` mapping.

    Attributes:
        template: Raw ``template`` value (normally a path string, possibly
            containing expressions and an ``@alias`` suffix).
        parameters: Raw ``parameters`` value, or UNDEFINED when absent.
    """

    template: Any
    parameters: Any = UNDEFINED

    @property
    def has_parameters(self) -> bool:
        return self.parameters is not UNDEFINED


def template_reference_of(value: Any) -> TemplateReference | None:
    """Return the template reference carried by ``value``, if any.

    Any mapping with a ``template`` key is a reference; other keys besides
    ``parameters`` are ignored.
    """
    if isinstance(value, TemplateReference):
        return value
    if isinstance(value, Mapping) and TEMPLATE_KEY in value:
        return TemplateReference(
            template=value[TEMPLATE_KEY],
            parameters=value.get(PARAMETERS_KEY, UNDEFINED),
        )
    return None


def iter_pairs(mapping: Mapping[Any, Any]) -> list[tuple[Any, Any]]:
    """Return the pairs of ``mapping`` including duplicate keys."""
    if isinstance(mapping, YamlMapping):
        return mapping.pairs()
    return list(mapping.items())


# =============================================================================
# Coercion
# =============================================================================

_DECIMAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_HEX = re.compile(r"^0[xX][0-9a-fA-F]+$")
_INDEX = re.compile(r"^\d+$")


def is_number(value: Any) -> bool:
    """True for int and float values, excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_number(value: int | float) -> int | float:
    """Collapse integral floats to int so ``4 / 2`` renders as ``2``."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def to_number(value: Any) -> int | float:
    """Loose numeric conversion. Unconvertible values yield NaN."""
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if _DECIMAL.match(text):
            return normalize_number(float(text))
        if _HEX.match(text):
            return int(text, 16)
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        return math.nan
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(to_string(value[0]))
    return math.nan


def to_string(value: Any) -> str:
    """Render a value the way it appears when spliced into text."""
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return str(normalize_number(value))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(to_string(item) for item in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    return str(value)


def to_boolean(value: Any) -> bool:
    """Truthiness used by conditions and logical functions.

    ``False``, ``None``, UNDEFINED, ``0``, NaN, ``""`` and the string
    ``"false"`` (any case) are false. Every container is true, even empty.
    """
    if isinstance(value, bool):
        return value
    if value is None or value is UNDEFINED:
        return False
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == "true":
            return True
        return not (lowered == "false" or lowered == "")
    return True


def strict_equal(left: Any, right: Any) -> bool:
    """Equality without coercion. Containers compare by identity."""
    if left is UNDEFINED or right is UNDEFINED or left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return left is right


def to_plain(value: Any) -> Any:
    """Convert a value tree into JSON-compatible builtins.

    Undefined mapping entries are omitted; undefined list items and NaN or
    infinite numbers become ``None``.
    """
    if isinstance(value, Mapping):
        return {
            to_string(k) if not isinstance(k, str) else k: to_plain(v)
            for k, v in value.items()
            if v is not UNDEFINED
        }
    if isinstance(value, TemplateReference):
        plain: dict[str, Any] = {TEMPLATE_KEY: to_plain(value.template)}
        if value.has_parameters:
            plain[PARAMETERS_KEY] = to_plain(value.parameters)
        return plain
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if value is UNDEFINED:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_json(value: Any, indent: int | None = None) -> str:
    """Serialize to JSON; compact unless ``indent`` is given."""
    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        to_plain(value), indent=indent, separators=separators, ensure_ascii=False
    )


def _as_index(prop: Any) -> int | None:
    if isinstance(prop, bool):
        return None
    if isinstance(prop, int):
        return prop if prop >= 0 else None
    if isinstance(prop, float) and prop.is_integer() and prop >= 0:
        return int(prop)
    if isinstance(prop, str) and _INDEX.match(prop):
        return int(prop)
    return None


def get_member(target: Any, prop: Any) -> Any:
    """Read ``target[prop]`` without raising.

    Mappings are looked up by key (a numeric string also matches an integer
    key and vice versa). Sequences and strings accept non-negative indexes
    and ``length``. Anything unresolved is UNDEFINED.
    """
    if target is None or target is UNDEFINED or prop is None or prop is UNDEFINED:
        return UNDEFINED

    if isinstance(target, Mapping):
        try:
            if prop in target:
                return target[prop]
        except TypeError:
            return UNDEFINED
        if isinstance(prop, str) and _INDEX.match(prop) and int(prop) in target:
            return target[int(prop)]
        if is_number(prop) and to_string(prop) in target:
            return target[to_string(prop)]
        return UNDEFINED

    if isinstance(target, AliasedList) and isinstance(prop, str):
        aliased = target.by_alias(prop)
        if aliased is not UNDEFINED:
            return aliased

    if isinstance(target, (list, tuple, str)):
        if prop == "length":
            return len(target)
        index = _as_index(prop)
        if index is not None and index < len(target):
            return target[index]
        return UNDEFINED

    if isinstance(target, TemplateReference):
        if prop == TEMPLATE_KEY:
            return target.template
        if prop == PARAMETERS_KEY:
            return target.parameters
    return UNDEFINED
