"""Unit tests for rendering expanded documents as YAML."""

from __future__ import annotations

from pipeline_studio.dsl.serialization import dump_yaml
from pipeline_studio.dsl.values import UNDEFINED, AliasedList, TemplateReference, YamlMapping


class TestDumpYaml:
    """Tests for dump_yaml."""

    def test_sequences_are_indented(self) -> None:
        """Test list items are nested under their key."""
        text = dump_yaml({"steps": [{"script": "echo hi"}]})
        assert text == "steps:\n  - script: echo hi\n"

    def test_key_order_is_preserved(self) -> None:
        """Test keys are not sorted."""
        text = dump_yaml({"z": 1, "a": 2})
        assert text == "z: 1\na: 2\n"

    def test_multiline_strings_use_literal_style(self) -> None:
        """Test scripts spanning lines render as block literals."""
        text = dump_yaml({"script": "echo a\necho b\n"})
        assert text == "script: |\n  echo a\n  echo b\n"

    def test_undefined_entries_are_omitted(self) -> None:
        """Test UNDEFINED mapping values are skipped."""
        assert dump_yaml({"a": UNDEFINED, "b": 1}) == "b: 1\n"

    def test_yaml_mapping_is_last_wins(self) -> None:
        """Test duplicate keys render once with the last value."""
        mapping = YamlMapping([("a", 1), ("b", 2), ("a", 3)])
        assert dump_yaml(mapping) == "a: 3\nb: 2\n"

    def test_template_references_and_aliased_lists(self) -> None:
        """Test helper value types render as plain YAML."""
        text = dump_yaml(
            {
                "refs": AliasedList([TemplateReference("x.yml", {"a": 1})], {}),
                "pair": ("a", "b"),
            }
        )
        assert text == (
            "refs:\n"
            "  - template: x.yml\n"
            "    parameters:\n"
            "      a: 1\n"
            "pair:\n"
            "  - a\n"
            "  - b\n"
        )

    def test_ambiguous_strings_are_quoted(self) -> None:
        """Test strings that look like other scalars stay strings."""
        text = dump_yaml({"a": "true", "b": "10"})
        assert text == "a: 'true'\nb: '10'\n"

    def test_long_lines_are_not_wrapped(self) -> None:
        """Test lines longer than the default width stay on one line."""
        long_value = "x " * 100
        text = dump_yaml({"a": long_value.strip()})
        assert text.count("\n") == 1

    def test_shared_subtrees_are_not_anchored(self) -> None:
        """Test a value referenced twice is written twice."""
        shared = {"name": "x"}
        text = dump_yaml({"a": shared, "b": shared})
        assert "&" not in text
        assert text == "a:\n  name: x\nb:\n  name: x\n"
