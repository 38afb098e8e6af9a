"""Serialization of expanded documents back to YAML text."""

from __future__ import annotations

from typing import Any

import yaml

from pipeline_studio.dsl.values import (
    UNDEFINED,
    AliasedList,
    TemplateReference,
    YamlMapping,
    to_plain,
)

__all__ = ["PipelineDumper", "dump_yaml"]

# Lines are never folded.
_LINE_WIDTH = 2**31 - 1


class PipelineDumper(yaml.SafeDumper):
    """SafeDumper that indents sequences under their parent key.

    ``steps:`` followed by ``  - script: ...`` is the layout pipeline
    authors write, rather than PyYAML's default flush-left ``- script``.
    """

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)

    def ignore_aliases(self, data: Any) -> bool:
        # Shared subtrees are written out in full, never as anchors.
        return True


def _represent_str(dumper: PipelineDumper, value: str) -> yaml.ScalarNode:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


def _represent_yaml_mapping(dumper: PipelineDumper, value: YamlMapping) -> yaml.MappingNode:
    return dumper.represent_mapping(
        "tag:yaml.org,2002:map",
        [(k, v) for k, v in value.items() if v is not UNDEFINED],
    )


def _represent_dict(dumper: PipelineDumper, value: dict[Any, Any]) -> yaml.MappingNode:
    return dumper.represent_mapping(
        "tag:yaml.org,2002:map",
        [(k, v) for k, v in value.items() if v is not UNDEFINED],
    )


def _represent_template(dumper: PipelineDumper, value: TemplateReference) -> yaml.MappingNode:
    return dumper.represent_dict(to_plain(value))


def _represent_undefined(dumper: PipelineDumper, value: Any) -> yaml.ScalarNode:
    return dumper.represent_none(None)


PipelineDumper.add_representer(str, _represent_str)
PipelineDumper.add_representer(dict, _represent_dict)
PipelineDumper.add_representer(YamlMapping, _represent_yaml_mapping)
PipelineDumper.add_representer(AliasedList, PipelineDumper.represent_list)
PipelineDumper.add_representer(tuple, PipelineDumper.represent_list)
PipelineDumper.add_representer(TemplateReference, _represent_template)
PipelineDumper.add_representer(type(UNDEFINED), _represent_undefined)


def dump_yaml(document: Any) -> str:
    """Render an expanded document as block-style YAML.

    Key order is preserved, multi-line strings use literal block style and
    long lines are never wrapped.
    """
    result: str = yaml.dump(
        document,
        Dumper=PipelineDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=_LINE_WIDTH,
    )
    return result
