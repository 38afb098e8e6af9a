from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal, Self

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from pipeline_studio.constants import (
    DEFAULT_MAX_TEMPLATE_DEPTH,
    PROJECT_CONFIG_FILENAME,
    REPOSITORY_MATCH_FIELDS,
)
from pipeline_studio.exceptions import ConfigError
from pipeline_studio.logging import get_logger
from pipeline_studio.utils.paths import first_non_empty, resolve_configured_path

__all__ = [
    "StudioConfig",
    "ResourceLocationConfig",
    "build_resource_overrides",
    "load_config",
    "get_user_config_path",
]

logger = get_logger(__name__)

_project_config_path: ContextVar[Path | None] = ContextVar(
    "pipeline_studio_project_config", default=None
)


class ResourceLocationConfig(BaseModel):
    """Local checkout of a repository resource.

    Attributes:
        repository: Alias used in ``template: path@alias`` references.
        path: Local directory (or a file inside it). ``location`` is accepted
            as an alternative spelling.
        name: Only apply when the YAML resource has this ``name``.
        endpoint: Only apply when the YAML resource has this ``endpoint``.
        ref: Only apply when the YAML resource has this ``ref``.
        type: Only apply when the YAML resource has this ``type``.
    """

    repository: str = Field(min_length=1)
    path: str | None = None
    location: str | None = None
    name: str | None = None
    endpoint: str | None = None
    ref: str | None = None
    type: str | None = None

    @model_validator(mode="after")
    def check_has_path(self) -> Self:
        if first_non_empty(self.path, self.location) is None:
            raise ValueError(
                f"resource location for '{self.repository}' needs a path"
            )
        return self

    @property
    def raw_path(self) -> str:
        return first_non_empty(self.path, self.location) or ""

    def match_criteria(self) -> dict[str, str]:
        """Criteria a YAML repository entry must satisfy for this override."""
        criteria: dict[str, str] = {}
        for key in REPOSITORY_MATCH_FIELDS:
            value = getattr(self, key)
            if isinstance(value, str) and value.strip():
                criteria[key] = value.strip()
        return criteria


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source that reads one YAML file."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file, encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {yaml_file}: {e}") from e
            if loaded is None:
                logger.warning("config_file_empty", path=str(yaml_file))
            elif not isinstance(loaded, dict):
                raise ConfigError(
                    f"Config file {yaml_file} must contain a mapping",
                    value=type(loaded).__name__,
                )
            else:
                self._config_data = loaded

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config_data


class StudioConfig(BaseSettings):
    """Root configuration for pipeline expansion."""

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_STUDIO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    resource_locations: list[ResourceLocationConfig] = Field(default_factory=list)
    max_template_depth: int = Field(default=DEFAULT_MAX_TEMPLATE_DEPTH, ge=1, le=10000)
    workspace_folder: Path | None = None
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order sources from highest to lowest priority.

        1. Explicit keyword arguments
        2. Environment variables (PIPELINE_STUDIO_*)
        3. Project YAML config (./pipeline-studio.yaml or --config)
        4. User YAML config (~/.config/pipeline-studio/config.yaml)
        """
        project_config_path = (
            _project_config_path.get() or Path.cwd() / PROJECT_CONFIG_FILENAME
        )
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, project_config_path),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_user_config_path() -> Path:
    """Return ``~/.config/pipeline-studio/config.yaml``."""
    return Path.home() / ".config" / "pipeline-studio" / "config.yaml"


def load_config(config_path: Path | None = None) -> StudioConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Project config file. Defaults to ./pipeline-studio.yaml.

    Returns:
        The merged StudioConfig.

    Raises:
        ConfigError: If a config file is malformed or a value is invalid.
    """
    if config_path is None:
        config_path = Path.cwd() / PROJECT_CONFIG_FILENAME

    if not config_path.exists():
        logger.debug("project_config_missing", path=str(config_path))

    token = _project_config_path.set(config_path)
    try:
        return StudioConfig()
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_path.reset(token)


def build_resource_overrides(
    locations: list[ResourceLocationConfig],
    workspace_dir: str | None = None,
    document_dir: str | None = None,
) -> dict[str, Any] | None:
    """Turn configured resource locations into a ``resources`` override.

    Each configured entry becomes a repository override carrying its
    resolved ``location`` and the match criteria named in the config, so
    that it only applies to YAML repository resources that agree with it.

    Returns:
        ``{"repositories": {alias: {...}}}`` or None when nothing applies.
    """
    repositories: dict[str, dict[str, Any]] = {}
    for entry in locations:
        resolved = resolve_configured_path(entry.raw_path, workspace_dir, document_dir)
        if resolved is None:
            continue
        override: dict[str, Any] = {"location": resolved}
        criteria = entry.match_criteria()
        if criteria:
            override["matchCriteria"] = criteria
        repositories[entry.repository.strip()] = override

    if not repositories:
        return None
    return {"repositories": repositories}
