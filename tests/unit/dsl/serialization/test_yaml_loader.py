"""Unit tests for pipeline YAML loading."""

from __future__ import annotations

import pytest

from pipeline_studio.dsl.errors import PipelineParseError
from pipeline_studio.dsl.serialization import (
    load_pipeline_yaml,
    protect_expressions,
    restore_expressions,
)
from pipeline_studio.dsl.values import YamlMapping


class TestExpressionProtection:
    """Tests for hiding expression spans from the YAML scanner."""

    def test_round_trip(self) -> None:
        """Test protect then restore gives back the original text."""
        text = "a: ${{ { x: 1 } }}\nb: ${{ parameters.y }}"
        protected, spans = protect_expressions(text)
        assert "${{" not in protected
        assert spans == ["${{ { x: 1 } }}", "${{ parameters.y }}"]
        assert restore_expressions(protected, spans) == text

    def test_multiline_span_swaps_delimiters_only(self) -> None:
        """Test a span over several lines keeps its body for YAML to fold."""
        text = "a: ${{ coalesce(x,\n  y) }}"
        protected, spans = protect_expressions(text)
        assert spans == []
        assert "coalesce(x,\n  y)" in protected
        assert restore_expressions(protected) == text

    def test_text_without_expressions(self) -> None:
        """Test plain text is untouched."""
        assert protect_expressions("a: {b: 1}") == ("a: {b: 1}", [])
        assert restore_expressions("plain") == "plain"

    def test_quoted_style_unescapes_span(self) -> None:
        """Test spans restored into quoted scalars get that style's escapes."""
        _, spans = protect_expressions("a: '${{ eq(x, ''y'') }}'")
        assert restore_expressions("__AZURE_EXPR_0__", spans, "'") == "${{ eq(x, 'y') }}"
        assert restore_expressions("__AZURE_EXPR_0__", spans) == "${{ eq(x, ''y'') }}"


class TestLoadPipelineYaml:
    """Tests for load_pipeline_yaml."""

    def test_mappings_keep_duplicate_keys(self) -> None:
        """Test repeated directive keys survive loading."""
        doc = load_pipeline_yaml(
            """
steps:
  - script: a
variables:
  ${{ insert }}: {x: 1}
  ${{ insert }}: {y: 2}
"""
        )
        assert isinstance(doc, YamlMapping)
        variables = doc["variables"]
        assert [key for key, _ in variables.pairs()] == ["${{ insert }}", "${{ insert }}"]

    def test_expressions_with_braces(self) -> None:
        """Test object literals inside expressions do not break flow syntax."""
        doc = load_pipeline_yaml("value: ${{ { a: 1 } }}\n")
        assert doc["value"] == "${{ { a: 1 } }}"

    def test_expression_syntax_inside_plain_scalars(self) -> None:
        """Test colons, hashes and commas inside expressions stay literal."""
        doc = load_pipeline_yaml(
            """
variables:
  label: ${{ format('{0}: #{1}', a, b) }}
list: [${{ coalesce(x, y) }}, plain]
${{ if eq(parameters.mode, 'a: b') }}:
  key: ${{ { a: 1 } }}-suffix
"""
        )
        assert doc["variables"]["label"] == "${{ format('{0}: #{1}', a, b) }}"
        assert doc["list"] == ["${{ coalesce(x, y) }}", "plain"]
        assert doc["${{ if eq(parameters.mode, 'a: b') }}"]["key"] == "${{ { a: 1 } }}-suffix"

    def test_expressions_in_quoted_scalars(self) -> None:
        """Test quoted scalars still unescape the expression text."""
        doc = load_pipeline_yaml(
            "single: 'x ${{ eq(a, ''b'') }}'\n"
            'double: "${{ \\"q\\" }}\\tend"\n'
        )
        assert doc["single"] == "x ${{ eq(a, 'b') }}"
        assert doc["double"] == '${{ "q" }}\tend'

    def test_multiline_expressions(self) -> None:
        """Test expressions over several lines are folded by YAML as usual."""
        doc = load_pipeline_yaml(
            "plain: ${{ coalesce(a,\n  b) }}\nblock: |\n  ${{ coalesce(a,\n    b) }}\n"
        )
        assert doc["plain"] == "${{ coalesce(a, b) }}"
        assert doc["block"] == "${{ coalesce(a,\n  b) }}\n"

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("true", True),
            ("False", False),
            ("yes", "yes"),
            ("on", "on"),
            ("010", 10),
            ("0x1A", 26),
            ("0o17", 15),
            ("1.5", 1.5),
            ("~", None),
            ("null", None),
            ("2024-01-01", "2024-01-01"),
            ("1_000", "1_000"),
        ],
    )
    def test_scalar_schema(self, text: str, expected: object) -> None:
        """Test YAML 1.2 style scalar typing."""
        assert load_pipeline_yaml(f"value: {text}\n")["value"] == expected

    def test_empty_value_is_null(self) -> None:
        """Test a key with no value loads as None."""
        assert load_pipeline_yaml("value:\n")["value"] is None

    def test_empty_document(self) -> None:
        """Test an empty document is None."""
        assert load_pipeline_yaml("") is None

    def test_merge_keys(self) -> None:
        """Test anchors and merge keys still work."""
        doc = load_pipeline_yaml("base: &b {a: 1}\nderived:\n  <<: *b\n  c: 2\n")
        assert dict(doc["derived"]) == {"a": 1, "c": 2}

    def test_syntax_error_reports_line(self) -> None:
        """Test invalid YAML raises PipelineParseError with a line number."""
        with pytest.raises(PipelineParseError) as exc_info:
            load_pipeline_yaml("steps:\n  - script: a\n   bad: [\n", file_path="p.yml")
        error = exc_info.value
        assert error.file_path == "p.yml"
        assert error.line_number is not None
        assert error.message.startswith("Failed to parse YAML:")
        assert error.parse_error is not None
