"""Pipeline ``resources`` and the repository merge rule.

Repositories can be declared in the pipeline's ``resources.repositories``
section and supplied by the caller as overrides (typically local checkout
locations). Both sources are normalized into :class:`RepositoryEntry`
objects keyed by alias and merged:

- entries are keyed by alias (``repository``, else ``alias``, else ``name``);
  numeric or missing aliases get a positional key and never merge
- an override carrying match criteria is discarded when the declared entry
  with the same alias disagrees with any criterion
- otherwise the override's fields are shallow-merged over the declared ones
- order is declared entries first, then new override aliases
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from pipeline_studio.constants import REPOSITORY_LOCATION_FIELDS
from pipeline_studio.dsl.values import AliasedList
from pipeline_studio.utils.paths import first_non_empty

__all__ = [
    "MATCH_CRITERIA_KEYS",
    "RepositoryEntry",
    "ResourceConfig",
    "merge_repository_configs",
    "merge_resources_config",
    "normalize_repository_list",
    "normalize_resources_config",
]

#: Override keys that carry match criteria (public and legacy spelling)
MATCH_CRITERIA_KEYS: tuple[str, ...] = ("matchCriteria", "__match")


def _alias_of(fields: Mapping[str, Any]) -> str | None:
    for key in ("repository", "alias", "name"):
        value = fields.get(key)
        if isinstance(value, str) and value:
            return value
    return None


@dataclass(frozen=True, slots=True)
class RepositoryEntry:
    """One repository resource.

    Attributes:
        fields: The entry's raw fields (``repository``, ``type``, ``name``,
            ``ref``, ``endpoint``, ``location``, ...).
        match_criteria: For overrides, the field values a declared entry must
            have for the override to apply.
    """

    fields: Mapping[str, Any]
    match_criteria: Mapping[str, Any] = field(default_factory=dict)

    @property
    def alias(self) -> str | None:
        return _alias_of(self.fields)

    @property
    def location(self) -> str | None:
        """First non-empty of ``location``, ``path``, ``directory``, ``localPath``."""
        return first_non_empty(
            *(self.fields.get(key) for key in REPOSITORY_LOCATION_FIELDS)
        )

    def matches(self, criteria: Mapping[str, Any]) -> bool:
        for key, expected in criteria.items():
            if expected is None or expected == "":
                continue
            if key not in self.fields or self.fields[key] != expected:
                return False
        return True

    def with_location(self, location: str) -> RepositoryEntry:
        return RepositoryEntry({**self.fields, "location": location}, self.match_criteria)

    def to_value(self) -> dict[str, Any]:
        return dict(self.fields)


def _entry_from(raw: Mapping[str, Any], default_alias: str | None = None) -> RepositoryEntry:
    fields = {k: v for k, v in raw.items() if k not in MATCH_CRITERIA_KEYS}
    criteria: Mapping[str, Any] = {}
    for key in MATCH_CRITERIA_KEYS:
        candidate = raw.get(key)
        if isinstance(candidate, Mapping):
            criteria = dict(candidate)
            break
    if default_alias and not fields.get("repository"):
        fields["repository"] = default_alias
    return RepositoryEntry(fields, criteria)


def normalize_repository_list(value: Any) -> list[RepositoryEntry]:
    """Accept the list form or the alias-keyed mapping form of repositories.

    Non-mapping items are ignored. In the mapping form the key becomes the
    ``repository`` alias when the entry does not name one.
    """
    if not value:
        return []
    entries: list[RepositoryEntry] = []
    if isinstance(value, Mapping):
        for key, raw in value.items():
            if isinstance(raw, Mapping):
                entries.append(_entry_from(raw, default_alias=str(key) if key else None))
    elif isinstance(value, (list, tuple)):
        for raw in value:
            if isinstance(raw, RepositoryEntry):
                entries.append(raw)
            elif isinstance(raw, Mapping):
                entries.append(_entry_from(raw))
    return entries


def _merge_entries(
    base: Iterable[RepositoryEntry],
    overrides: Iterable[RepositoryEntry],
) -> tuple[RepositoryEntry, ...]:
    merged: dict[str, RepositoryEntry] = {}

    def add(entry: RepositoryEntry, is_override: bool) -> None:
        alias = entry.alias
        key = alias if alias and not alias.isdigit() else f"__index_{len(merged)}"
        fields = dict(entry.fields)
        if key == alias and not fields.get("repository"):
            fields["repository"] = alias

        existing = merged.get(key)
        if (
            is_override
            and existing is not None
            and entry.match_criteria
            and not existing.matches(entry.match_criteria)
        ):
            return
        if existing is not None:
            merged[key] = RepositoryEntry({**existing.fields, **fields})
        else:
            merged[key] = RepositoryEntry(fields)

    for entry in base:
        add(entry, is_override=False)
    for entry in overrides:
        add(entry, is_override=True)
    return tuple(merged.values())


def merge_repository_configs(base: Any, override: Any) -> tuple[RepositoryEntry, ...]:
    """Merge declared repositories with caller overrides.

    Example:
        >>> merged = merge_repository_configs(
        ...     [{"repository": "templates", "type": "git", "name": "org/templates"}],
        ...     {"templates": {"location": "/src/templates"}},
        ... )
        >>> merged[0].fields["name"], merged[0].location
        ('org/templates', '/src/templates')
    """
    return _merge_entries(normalize_repository_list(base), normalize_repository_list(override))


@dataclass(frozen=True)
class ResourceConfig:
    """Normalized ``resources`` section.

    Attributes:
        repositories: Repository entries in merge order.
        other: Every other resource kind (``pipelines``, ``containers``, ...)
            carried verbatim.
    """

    repositories: tuple[RepositoryEntry, ...] = ()
    other: Mapping[str, Any] = field(default_factory=dict)

    def get(self, alias: str) -> RepositoryEntry | None:
        for entry in self.repositories:
            if entry.alias == alias:
                return entry
        return None

    @cached_property
    def _value(self) -> dict[str, Any]:
        items = [entry.to_value() for entry in self.repositories]
        aliases: dict[str, Any] = {}
        for entry, item in zip(self.repositories, items, strict=True):
            alias = entry.alias
            if alias and not alias.isdigit() and alias not in aliases:
                aliases[alias] = item
        return {**self.other, "repositories": AliasedList(items, aliases)}

    def to_value(self) -> dict[str, Any]:
        """Expression view: ``{"repositories": [...], <other kinds>}``."""
        return self._value


def normalize_resources_config(node: Any) -> ResourceConfig:
    if isinstance(node, ResourceConfig):
        return node
    if not isinstance(node, Mapping):
        return ResourceConfig()
    return ResourceConfig(
        repositories=tuple(normalize_repository_list(node.get("repositories"))),
        other={k: v for k, v in node.items() if k != "repositories"},
    )


def merge_resources_config(base: Any, override: Any) -> ResourceConfig:
    """Merge declared resources with caller overrides.

    Repositories follow the merge rule described in the module docstring;
    other resource kinds from the override replace the declared ones.
    """
    base_config = normalize_resources_config(base)
    override_config = normalize_resources_config(override)
    return ResourceConfig(
        repositories=_merge_entries(base_config.repositories, override_config.repositories),
        other={**base_config.other, **override_config.other},
    )
