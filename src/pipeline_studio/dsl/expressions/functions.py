"""Builtin functions available inside ``${{ }}`` expressions.

Functions are looked up case-insensitively, so ``eq``, ``EQ`` and ``Eq`` are
the same function. Missing arguments are treated as UNDEFINED and no
function raises for bad input: each one degrades to a neutral result.

Only ``counter`` keeps state. The counters belong to the
:class:`FunctionLibrary` instance, so two expansion engines never share
counter values.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

from pipeline_studio.dsl.values import (
    UNDEFINED,
    is_number,
    normalize_number,
    strict_equal,
    to_boolean,
    to_json,
    to_string,
)

__all__ = [
    "FunctionLibrary",
    "compare_values",
    "format_datetime",
]

_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_FORMAT_TOKEN = re.compile(r"\{\{|\}\}|\{(\d+)(?::([^}]+))?\}")
_DATE_TOKEN = re.compile(r"yyyy|yy|MM|M|dd|d|HH|H|mm|m|ss|s|ffff|fff|ff|f")

BuiltinFunction = Callable[["FunctionLibrary", Sequence[Any]], Any]

_REGISTRY: dict[str, BuiltinFunction] = {}


def _builtin(name: str) -> Callable[[BuiltinFunction], BuiltinFunction]:
    def register(fn: BuiltinFunction) -> BuiltinFunction:
        _REGISTRY[name.lower()] = fn
        return fn

    return register


def _arg(args: Sequence[Any], position: int) -> Any:
    return args[position] if position < len(args) else UNDEFINED


def _normalize_for_compare(value: Any) -> Any:
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, str):
        text = value.strip()
        lowered = text.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        if _NUMERIC.match(text):
            return normalize_number(float(text))
        return text
    return value


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison with pipeline coercion rules.

    Each operand is normalized on its own: null and undefined become the
    empty string, strings are trimmed, ``"true"``/``"false"`` become
    booleans and numeric strings become numbers. Two numbers or two
    booleans compare by value; anything else compares by its string form.

    Returns:
        -1, 0 or 1.

    Examples:
        >>> compare_values("1", 1), compare_values("TRUE", True)
        (0, 0)
        >>> compare_values("A", "a")
        -1
    """
    a = _normalize_for_compare(left)
    b = _normalize_for_compare(right)

    if strict_equal(a, b):
        return 0

    both_numbers = is_number(a) and is_number(b)
    both_booleans = isinstance(a, bool) and isinstance(b, bool)
    if both_numbers or both_booleans:
        return 1 if a > b else -1

    a_text = to_string(a)
    b_text = to_string(b)
    if a_text == b_text:
        return 0
    return 1 if a_text > b_text else -1


def format_datetime(value: datetime | date, spec: str) -> str:
    """Render ``value`` with .NET-style tokens (``yyyy-MM-dd HH:mm:ss.fff``)."""
    hour = getattr(value, "hour", 0)
    minute = getattr(value, "minute", 0)
    second = getattr(value, "second", 0)
    micro = getattr(value, "microsecond", 0)
    tokens = {
        "yyyy": f"{value.year:04d}",
        "yy": f"{value.year % 100:02d}",
        "MM": f"{value.month:02d}",
        "M": str(value.month),
        "dd": f"{value.day:02d}",
        "d": str(value.day),
        "HH": f"{hour:02d}",
        "H": str(hour),
        "mm": f"{minute:02d}",
        "m": str(minute),
        "ss": f"{second:02d}",
        "s": str(second),
        "ffff": f"{micro // 100:04d}",
        "fff": f"{micro // 1000:03d}",
        "ff": f"{micro // 10000:02d}",
        "f": str(micro // 100000),
    }
    return _DATE_TOKEN.sub(lambda m: tokens[m.group(0)], spec)


def _parse_seed(seed: Any) -> int | float:
    if is_number(seed):
        return seed
    if isinstance(seed, str):
        match = _LEADING_INT.match(seed)
        if match:
            return int(match.group(1))
    return 0


class FunctionLibrary:
    """Dispatches builtin calls and owns ``counter`` state.

    Example:
        >>> functions = FunctionLibrary()
        >>> functions.call("Eq", ["1", 1])
        True
        >>> functions.call("counter", ["build", 5]), functions.call("counter", ["build", 5])
        (5, 6)
    """

    def __init__(self) -> None:
        self.counters: dict[str, int | float] = {}

    def call(self, name: str, args: Sequence[Any]) -> Any:
        """Invoke builtin ``name``. Unknown functions evaluate to ``None``."""
        fn = _REGISTRY.get(name.lower())
        if fn is None:
            return None
        return fn(self, list(args))

    def reset_counters(self) -> None:
        self.counters.clear()

    # --- comparison -------------------------------------------------------

    @_builtin("eq")
    def _eq(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) == 0

    @_builtin("ne")
    def _ne(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) != 0

    @_builtin("gt")
    def _gt(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) > 0

    @_builtin("ge")
    def _ge(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) >= 0

    @_builtin("lt")
    def _lt(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) < 0

    @_builtin("le")
    def _le(self, args: Sequence[Any]) -> bool:
        return compare_values(_arg(args, 0), _arg(args, 1)) <= 0

    # --- logical ----------------------------------------------------------

    @_builtin("and")
    def _and(self, args: Sequence[Any]) -> bool:
        return all(to_boolean(arg) for arg in args)

    @_builtin("or")
    def _or(self, args: Sequence[Any]) -> bool:
        return any(to_boolean(arg) for arg in args)

    @_builtin("not")
    def _not(self, args: Sequence[Any]) -> bool:
        return not to_boolean(_arg(args, 0))

    @_builtin("xor")
    def _xor(self, args: Sequence[Any]) -> bool:
        return to_boolean(_arg(args, 0)) != to_boolean(_arg(args, 1))

    # --- containment ------------------------------------------------------

    @_builtin("coalesce")
    def _coalesce(self, args: Sequence[Any]) -> Any:
        for arg in args:
            if arg is not None and arg is not UNDEFINED and arg != "":
                return arg
        return UNDEFINED

    @_builtin("contains")
    def _contains(self, args: Sequence[Any]) -> bool:
        container, value = _arg(args, 0), _arg(args, 1)
        if isinstance(container, str):
            return isinstance(value, str) and value in container
        if isinstance(container, (list, tuple)):
            return any(compare_values(item, value) == 0 for item in container)
        if isinstance(container, Mapping):
            try:
                return value in container
            except TypeError:
                return False
        return False

    @_builtin("containsValue")
    def _contains_value(self, args: Sequence[Any]) -> bool:
        container, value = _arg(args, 0), _arg(args, 1)
        if isinstance(container, Mapping):
            candidates: Sequence[Any] = list(container.values())
        elif isinstance(container, (list, tuple)):
            candidates = container
        else:
            return False
        return any(compare_values(item, value) == 0 for item in candidates)

    @_builtin("in")
    def _in(self, args: Sequence[Any]) -> bool:
        needle = _arg(args, 0)
        return any(compare_values(needle, candidate) == 0 for candidate in args[1:])

    @_builtin("notIn")
    def _not_in(self, args: Sequence[Any]) -> bool:
        return not self._in(args)

    # --- strings ----------------------------------------------------------

    @_builtin("lower")
    def _lower(self, args: Sequence[Any]) -> Any:
        value = _arg(args, 0)
        return value.lower() if isinstance(value, str) else value

    @_builtin("upper")
    def _upper(self, args: Sequence[Any]) -> Any:
        value = _arg(args, 0)
        return value.upper() if isinstance(value, str) else value

    @_builtin("trim")
    def _trim(self, args: Sequence[Any]) -> Any:
        value = _arg(args, 0)
        return value.strip() if isinstance(value, str) else value

    @_builtin("startsWith")
    def _starts_with(self, args: Sequence[Any]) -> bool:
        text, prefix = _arg(args, 0), _arg(args, 1)
        if not isinstance(text, str) or not isinstance(prefix, str):
            return False
        return text.lower().startswith(prefix.lower())

    @_builtin("endsWith")
    def _ends_with(self, args: Sequence[Any]) -> bool:
        text, suffix = _arg(args, 0), _arg(args, 1)
        if not isinstance(text, str) or not isinstance(suffix, str):
            return False
        return text.lower().endswith(suffix.lower())

    @_builtin("replace")
    def _replace(self, args: Sequence[Any]) -> Any:
        text = _arg(args, 0)
        if not isinstance(text, str):
            return text
        search = to_string(_arg(args, 1))
        if not search:
            return text
        return text.replace(search, to_string(_arg(args, 2)))

    @_builtin("split")
    def _split(self, args: Sequence[Any]) -> list[Any]:
        text = _arg(args, 0)
        if not isinstance(text, str):
            return [text]
        delimiter = to_string(_arg(args, 1))
        if not delimiter:
            return list(text)
        return text.split(delimiter)

    @_builtin("join")
    def _join(self, args: Sequence[Any]) -> str:
        separator, items = _arg(args, 0), _arg(args, 1)
        if not isinstance(items, (list, tuple)):
            return items if isinstance(items, str) else to_string(items)
        parts = [
            "" if isinstance(item, (Mapping, list, tuple)) else to_string(item)
            for item in items
        ]
        return to_string(separator).join(parts)

    @_builtin("format")
    def _format(self, args: Sequence[Any]) -> str:
        if not args:
            return ""
        template = to_string(args[0])
        values = list(args[1:])

        def substitute(match: re.Match[str]) -> str:
            token = match.group(0)
            if token == "{{":
                return "{"
            if token == "}}":
                return "}"
            position = int(match.group(1))
            if position >= len(values):
                return token
            value = values[position]
            spec = match.group(2)
            if spec and isinstance(value, (datetime, date)):
                return format_datetime(value, spec)
            return to_string(value)

        return _FORMAT_TOKEN.sub(substitute, template)

    @_builtin("length")
    def _length(self, args: Sequence[Any]) -> int:
        value = _arg(args, 0)
        if isinstance(value, (str, list, tuple, Mapping)):
            return len(value)
        return 0

    # --- conversion and state ---------------------------------------------

    @_builtin("convertToJson")
    def _convert_to_json(self, args: Sequence[Any]) -> str:
        value = _arg(args, 0)
        if value is UNDEFINED:
            return "null"
        return to_json(value, indent=2)

    @_builtin("counter")
    def _counter(self, args: Sequence[Any]) -> int | float:
        key = to_string(_arg(args, 0))
        if key not in self.counters:
            self.counters[key] = _parse_seed(_arg(args, 1))
        current = self.counters[key]
        self.counters[key] = current + 1
        return current

    @_builtin("iif")
    def _iif(self, args: Sequence[Any]) -> Any:
        return _arg(args, 1) if to_boolean(_arg(args, 0)) else _arg(args, 2)

    # --- job status -------------------------------------------------------
    # There is no running job at compile time; the answers assume success.

    @_builtin("always")
    def _always(self, args: Sequence[Any]) -> bool:
        return True

    @_builtin("canceled")
    def _canceled(self, args: Sequence[Any]) -> bool:
        return False

    @_builtin("failed")
    def _failed(self, args: Sequence[Any]) -> bool:
        return False

    @_builtin("succeeded")
    def _succeeded(self, args: Sequence[Any]) -> bool:
        return True

    @_builtin("succeededOrFailed")
    def _succeeded_or_failed(self, args: Sequence[Any]) -> bool:
        return True
