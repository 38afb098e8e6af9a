"""Pipeline YAML loading.

Pipeline files are loaded with a SafeLoader subclass that differs from
``yaml.safe_load`` in three ways:

- Mappings become :class:`~pipeline_studio.dsl.values.YamlMapping`, so
  repeated keys (two ``${{ insert }}`` entries, two identical ``${{ if }}``
  conditions) survive loading in source order.
- Plain scalars follow the YAML 1.2 core schema the way Azure Pipelines
  reads them: only ``true``/``false`` are booleans (``yes``, ``on``, ``no``
  stay strings), ``010`` is ten and dates stay strings.
- Compile-time expressions are hidden from the YAML scanner. A one-line
  ``${{ ... }}`` span is replaced by an opaque numbered token, so braces,
  colons and ``#`` inside it (``${{ { a: 1 } }}``) never reach the YAML
  syntax; the span is put back in every loaded string, unescaped the way
  the enclosing quoted scalar would have been. A span running over several
  lines only has its ``${{`` and ``}}`` delimiters swapped, which leaves
  line folding and block indentation to YAML.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

import yaml

from pipeline_studio.constants import (
    EXPRESSION_CLOSE,
    EXPRESSION_OPEN,
    PROTECTED_CLOSE,
    PROTECTED_OPEN,
    PROTECTED_SPAN_PREFIX,
)
from pipeline_studio.dsl.errors import PipelineParseError
from pipeline_studio.dsl.values import YamlMapping

__all__ = [
    "PipelineLoader",
    "load_pipeline_yaml",
    "protect_expressions",
    "restore_expressions",
]

_EXPRESSION_SPAN = re.compile(r"\$\{\{[\s\S]*?\}\}")
_SPAN_TOKEN = re.compile(re.escape(PROTECTED_SPAN_PREFIX) + r"(\d+)__")
_QUOTE_STYLES = ("'", '"')


def protect_expressions(text: str) -> tuple[str, list[str]]:
    """Hide expression spans from the YAML scanner.

    Returns:
        The protected text and the one-line spans it replaced, indexed by
        token number.

    Example:
        >>> protect_expressions("a: ${{ { x: 1 } }}")
        ('a: __AZURE_EXPR_0__', ['${{ { x: 1 } }}'])
    """
    spans: list[str] = []

    def replace(match: re.Match[str]) -> str:
        span = match.group(0)
        if "\n" in span:
            return span.replace(EXPRESSION_OPEN, PROTECTED_OPEN).replace(
                EXPRESSION_CLOSE, PROTECTED_CLOSE
            )
        spans.append(span)
        return f"{PROTECTED_SPAN_PREFIX}{len(spans) - 1}__"

    return _EXPRESSION_SPAN.sub(replace, text), spans


def _unescape(span: str, style: str | None) -> str:
    if style not in _QUOTE_STYLES:
        return span
    value: str = yaml.safe_load(f"{style}{span}{style}")
    return value


def restore_expressions(
    text: str, spans: Sequence[str] = (), style: str | None = None
) -> str:
    """Inverse of :func:`protect_expressions` for one loaded string.

    Args:
        text: A string as loaded by YAML.
        spans: Spans returned by :func:`protect_expressions`.
        style: YAML style of the scalar the string came from; spans inside
            quoted scalars get that style's escapes applied.
    """
    if PROTECTED_SPAN_PREFIX in text:

        def replace(match: re.Match[str]) -> str:
            index = int(match.group(1))
            if index >= len(spans):
                return match.group(0)
            return _unescape(spans[index], style)

        text = _SPAN_TOKEN.sub(replace, text)
    if PROTECTED_OPEN not in text and PROTECTED_CLOSE not in text:
        return text
    return text.replace(PROTECTED_OPEN, EXPRESSION_OPEN).replace(
        PROTECTED_CLOSE, EXPRESSION_CLOSE
    )


class PipelineLoader(yaml.SafeLoader):
    """SafeLoader with YAML 1.2 scalars and duplicate-preserving mappings.

    Args:
        stream: Protected YAML text.
        expression_spans: Spans the placeholder tokens in ``stream`` stand for.
    """

    yaml_implicit_resolvers: dict[Any, Any] = {}

    def __init__(self, stream: str, expression_spans: Sequence[str] = ()) -> None:
        super().__init__(stream)
        self.expression_spans = list(expression_spans)


PipelineLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)
PipelineLoader.add_implicit_resolver(
    "tag:yaml.org,2002:int",
    re.compile(r"^(?:[-+]?[0-9]+|0o[0-7]+|0x[0-9a-fA-F]+)$"),
    list("-+0123456789"),
)
PipelineLoader.add_implicit_resolver(
    "tag:yaml.org,2002:float",
    re.compile(
        r"^(?:[-+]?(?:\.[0-9]+|[0-9]+(?:\.[0-9]*)?)(?:[eE][-+]?[0-9]+)?"
        r"|[-+]?\.(?:inf|Inf|INF)|\.(?:nan|NaN|NAN))$"
    ),
    list("-+0123456789."),
)
PipelineLoader.add_implicit_resolver(
    "tag:yaml.org,2002:null",
    re.compile(r"^(?:~|null|Null|NULL|)$"),
    ["~", "n", "N", ""],
)
PipelineLoader.add_implicit_resolver(
    "tag:yaml.org,2002:merge",
    re.compile(r"^(?:<<)$"),
    ["<"],
)


def _construct_str(loader: PipelineLoader, node: yaml.ScalarNode) -> str:
    return restore_expressions(
        loader.construct_scalar(node), loader.expression_spans, node.style
    )


def _construct_int(loader: PipelineLoader, node: yaml.ScalarNode) -> int:
    text = str(loader.construct_scalar(node))
    if text.startswith(("0x", "0X")):
        return int(text[2:], 16)
    if text.startswith(("0o", "0O")):
        return int(text[2:], 8)
    return int(text, 10)


def _construct_mapping(loader: PipelineLoader, node: yaml.MappingNode) -> YamlMapping:
    loader.flatten_mapping(node)
    pairs: list[tuple[Any, Any]] = []
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        try:
            hash(key)
        except TypeError as e:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping",
                node.start_mark,
                "found unhashable key",
                key_node.start_mark,
            ) from e
        pairs.append((key, loader.construct_object(value_node, deep=True)))
    return YamlMapping(pairs)


PipelineLoader.add_constructor("tag:yaml.org,2002:str", _construct_str)
PipelineLoader.add_constructor("tag:yaml.org,2002:int", _construct_int)
PipelineLoader.add_constructor("tag:yaml.org,2002:map", _construct_mapping)


def load_pipeline_yaml(text: str, file_path: str | None = None) -> Any:
    """Parse pipeline YAML text into a value tree.

    Args:
        text: YAML source.
        file_path: Source file, used in error reports.

    Returns:
        The loaded document, or None for an empty document.

    Raises:
        PipelineParseError: If the text is not valid YAML.

    Example:
        >>> doc = load_pipeline_yaml("steps:\\n- ${{ insert }}: {a: 1}\\n")
        >>> doc["steps"][0].pairs()[0][0]
        '${{ insert }}'
    """
    protected, spans = protect_expressions(text)
    try:
        loader = PipelineLoader(protected, spans)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line_number = mark.line + 1 if mark is not None else None
        raise PipelineParseError(
            f"Failed to parse YAML: {e}",
            file_path=file_path,
            line_number=line_number,
            parse_error=e,
        ) from e
