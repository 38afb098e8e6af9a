"""Unit tests for resources and the repository merge rule."""

from __future__ import annotations

from pipeline_studio.dsl.resources import (
    RepositoryEntry,
    ResourceConfig,
    merge_repository_configs,
    merge_resources_config,
    normalize_repository_list,
    normalize_resources_config,
)


class TestNormalizeRepositoryList:
    """Tests for accepted repository shapes."""

    def test_list_form(self) -> None:
        """Test the list form keeps entries in order and skips junk."""
        entries = normalize_repository_list(
            [{"repository": "a"}, "junk", {"repository": "b"}]
        )
        assert [entry.alias for entry in entries] == ["a", "b"]

    def test_mapping_form_uses_key_as_alias(self) -> None:
        """Test the alias-keyed mapping form."""
        entries = normalize_repository_list({"templates": {"location": "/t"}})
        assert entries[0].fields == {"location": "/t", "repository": "templates"}

    def test_match_criteria_are_split_out(self) -> None:
        """Test matchCriteria and __match are not fields."""
        entries = normalize_repository_list(
            [
                {"repository": "a", "matchCriteria": {"name": "org/a"}},
                {"repository": "b", "__match": {"type": "git"}},
            ]
        )
        assert entries[0].match_criteria == {"name": "org/a"}
        assert "matchCriteria" not in entries[0].fields
        assert entries[1].match_criteria == {"type": "git"}

    def test_empty(self) -> None:
        """Test empty and missing sections."""
        assert normalize_repository_list(None) == []
        assert normalize_repository_list([]) == []


class TestRepositoryEntry:
    """Tests for RepositoryEntry helpers."""

    def test_alias_precedence(self) -> None:
        """Test repository wins over alias and name."""
        assert RepositoryEntry({"name": "n", "alias": "a"}).alias == "a"
        assert RepositoryEntry({"name": "n", "repository": "r"}).alias == "r"
        assert RepositoryEntry({"type": "git"}).alias is None

    def test_location_fields(self) -> None:
        """Test the first non-empty location-like field is used."""
        assert RepositoryEntry({"location": "", "path": "/p"}).location == "/p"
        assert RepositoryEntry({"localPath": "/l"}).location == "/l"

    def test_matches_ignores_empty_criteria(self) -> None:
        """Test empty criterion values always match."""
        entry = RepositoryEntry({"name": "org/a", "type": "git"})
        assert entry.matches({"name": "org/a", "ref": ""})
        assert not entry.matches({"type": "github"})
        assert not entry.matches({"endpoint": "svc"})


class TestMergeRepositoryConfigs:
    """Tests for the repository merge rule."""

    def test_override_fields_merge_over_declared(self) -> None:
        """Test the override adds a location to a declared entry."""
        merged = merge_repository_configs(
            [{"repository": "templates", "type": "git", "name": "org/templates"}],
            [{"repository": "templates", "location": "/src/templates"}],
        )
        assert len(merged) == 1
        assert merged[0].fields == {
            "repository": "templates",
            "type": "git",
            "name": "org/templates",
            "location": "/src/templates",
        }

    def test_mismatched_criteria_discard_override(self) -> None:
        """Test an override whose criteria disagree is ignored."""
        merged = merge_repository_configs(
            [{"repository": "templates", "name": "org/templates"}],
            [
                {
                    "repository": "templates",
                    "location": "/elsewhere",
                    "matchCriteria": {"name": "org/other"},
                }
            ],
        )
        assert merged[0].location is None

    def test_matching_criteria_apply_override(self) -> None:
        """Test an override whose criteria agree is applied."""
        merged = merge_repository_configs(
            [{"repository": "templates", "name": "org/templates"}],
            [
                {
                    "repository": "templates",
                    "location": "/here",
                    "__match": {"name": "org/templates"},
                }
            ],
        )
        assert merged[0].location == "/here"

    def test_new_aliases_are_appended(self) -> None:
        """Test declared entries come first, then new overrides."""
        merged = merge_repository_configs(
            [{"repository": "a"}, {"repository": "b"}],
            {"c": {"location": "/c"}, "a": {"ref": "main"}},
        )
        assert [entry.alias for entry in merged] == ["a", "b", "c"]
        assert merged[0].fields["ref"] == "main"

    def test_numeric_or_missing_aliases_never_merge(self) -> None:
        """Test positional entries stay separate."""
        merged = merge_repository_configs(
            [{"repository": "1", "type": "git"}, {"type": "github"}],
            [{"repository": "1", "type": "tfs"}],
        )
        assert len(merged) == 3

    def test_alias_becomes_repository_field(self) -> None:
        """Test entries keyed by name gain a repository field."""
        merged = merge_repository_configs([{"name": "tools"}], [])
        assert merged[0].fields["repository"] == "tools"


class TestResourceConfig:
    """Tests for ResourceConfig and resource merging."""

    def test_expression_view(self) -> None:
        """Test repositories are exposed by index and alias."""
        config = normalize_resources_config(
            {
                "repositories": [{"repository": "t", "type": "git"}],
                "pipelines": [{"pipeline": "ci"}],
            }
        )
        value = config.to_value()
        assert value["repositories"][0]["type"] == "git"
        assert value["repositories"].aliases["t"]["type"] == "git"
        assert value["pipelines"] == [{"pipeline": "ci"}]
        assert config.get("t") is not None
        assert config.get("nope") is None

    def test_merge_other_kinds(self) -> None:
        """Test non-repository kinds from the override replace declared ones."""
        merged = merge_resources_config(
            {"containers": [{"container": "a"}], "repositories": [{"repository": "x"}]},
            {"containers": [{"container": "b"}]},
        )
        assert merged.other == {"containers": [{"container": "b"}]}
        assert [entry.alias for entry in merged.repositories] == ["x"]

    def test_non_mapping_is_empty(self) -> None:
        """Test junk resources normalize to an empty config."""
        assert normalize_resources_config("nope") == ResourceConfig()
        config = ResourceConfig()
        assert normalize_resources_config(config) is config
