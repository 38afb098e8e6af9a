"""Reading ``parameters`` and ``variables`` sections into plain mappings.

Pipelines and templates declare parameters either as a list::

    parameters:
      - name: env
        type: string
        default: dev

or as a mapping from name to default (``env: dev``) or to a definition
(``env: {default: dev}``). Variables use the same two shapes with
``name``/``value`` pairs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pipeline_studio.dsl.values import UNDEFINED

__all__ = [
    "extract_parameters",
    "extract_variables",
    "first_defined",
    "normalize_template_parameters",
]


def first_defined(*values: Any) -> Any:
    """Return the first value that is not UNDEFINED (``None`` counts as defined)."""
    for value in values:
        if value is not UNDEFINED:
            return value
    return UNDEFINED


def _declared_value(definition: Mapping[str, Any]) -> Any:
    value = first_defined(
        definition.get("value", UNDEFINED),
        definition.get("default", UNDEFINED),
        definition.get("values", UNDEFINED),
    )
    return None if value is UNDEFINED else value


def extract_parameters(document: Any) -> dict[str, Any]:
    """Collect parameter defaults from a document's ``parameters`` section.

    Each parameter takes the first defined of ``value``, ``default`` and
    ``values``; a parameter declaring none of them is ``None``.

    Example:
        >>> extract_parameters({"parameters": [{"name": "env", "default": "dev"}]})
        {'env': 'dev'}
    """
    if not isinstance(document, Mapping):
        return {}
    section = document.get("parameters")
    result: dict[str, Any] = {}

    if isinstance(section, list):
        for definition in section:
            if isinstance(definition, Mapping) and definition.get("name"):
                result[str(definition["name"])] = _declared_value(definition)
    elif isinstance(section, Mapping):
        for name, definition in section.items():
            if isinstance(definition, Mapping):
                result[name] = _declared_value(definition)
            else:
                result[name] = definition
    return result


def extract_variables(document: Any) -> dict[str, Any]:
    """Collect the compile-time view of a document's ``variables`` section.

    Variable groups and templates inside the list form have no ``name`` and
    are skipped.
    """
    if not isinstance(document, Mapping):
        return {}
    section = document.get("variables")
    result: dict[str, Any] = {}

    if isinstance(section, list):
        for variable in section:
            if isinstance(variable, Mapping) and variable.get("name"):
                value = first_defined(
                    variable.get("value", UNDEFINED),
                    variable.get("default", UNDEFINED),
                )
                result[str(variable["name"])] = value
    elif isinstance(section, Mapping):
        for name, value in section.items():
            if isinstance(value, Mapping) and "value" in value:
                result[name] = value["value"]
            else:
                result[name] = value
    return result


def normalize_template_parameters(value: Any) -> dict[str, Any]:
    """Normalize already-expanded caller parameters into a mapping.

    Accepts a mapping, a list of ``{name, value|default|values}`` items or a
    list of single-purpose mappings that are merged left to right. Anything
    else yields no parameters.
    """
    if isinstance(value, Mapping):
        return dict(value)
    if not isinstance(value, list):
        return {}

    result: dict[str, Any] = {}
    for item in value:
        if not isinstance(item, Mapping):
            continue
        if "name" in item:
            name = item["name"]
            if isinstance(name, str) and name.strip():
                result[name.strip()] = first_defined(
                    item.get("value", UNDEFINED),
                    item.get("default", UNDEFINED),
                    item.get("values", UNDEFINED),
                )
            continue
        for key, entry in item.items():
            if isinstance(key, str) and key.strip():
                result[key.strip()] = entry
    return result
