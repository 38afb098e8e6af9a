"""pipeline-studio constants.

This module is the single source of truth for the marker strings, document
keys and limits shared by the expander, the template resolver and the YAML
loader.
"""

from __future__ import annotations

# =============================================================================
# Expression Markers
# =============================================================================

#: Opening delimiter of a compile-time expression
EXPRESSION_OPEN: str = "${{"

#: Closing delimiter of a compile-time expression
EXPRESSION_CLOSE: str = "}}"

#: Placeholder substituted for ``${{`` before YAML parsing
PROTECTED_OPEN: str = "__AZURE_EXPR_OPEN__"

#: Placeholder substituted for ``}}`` before YAML parsing
PROTECTED_CLOSE: str = "__AZURE_EXPR_CLOSE__"

#: Prefix of the numbered token standing in for a one-line expression span
PROTECTED_SPAN_PREFIX: str = "__AZURE_EXPR_"

# =============================================================================
# Document Keys
# =============================================================================

#: Key that marks a mapping as a template reference
TEMPLATE_KEY: str = "template"

#: Key holding caller-supplied template parameters
PARAMETERS_KEY: str = "parameters"

#: Sentinel key used by object-each bodies to emit a computed key
DYNAMIC_KEY: str = "--"

#: Keys tried (in order) when extracting the body of a template document
TEMPLATE_BODY_KEYS: tuple[str, ...] = (
    "stages",
    "jobs",
    "steps",
    "variables",
    "stage",
    "job",
    "deployment",
    "deployments",
)

#: Item fields tried (in order) for the computed key of an object-each
EACH_ITERATION_KEY_FIELDS: tuple[str, ...] = ("key", "name", "matrixKey", "label", "id")

#: Repository fields that may carry a local checkout location (in order)
REPOSITORY_LOCATION_FIELDS: tuple[str, ...] = (
    "location",
    "path",
    "directory",
    "localPath",
)

#: Fields compared when an override carries match criteria
REPOSITORY_MATCH_FIELDS: tuple[str, ...] = (
    "repository",
    "name",
    "endpoint",
    "ref",
    "type",
)

#: Alias that always refers to the repository of the current document
SELF_REPOSITORY_ALIAS: str = "self"

# =============================================================================
# Limits
# =============================================================================

#: Maximum number of nested template invocations before expansion aborts
DEFAULT_MAX_TEMPLATE_DEPTH: int = 100

#: Name of the project configuration file
PROJECT_CONFIG_FILENAME: str = "pipeline-studio.yaml"
