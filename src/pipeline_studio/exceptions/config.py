from __future__ import annotations

from typing import Any

from pipeline_studio.exceptions.base import PipelineStudioError


class ConfigError(PipelineStudioError):
    """Exception for configuration loading, parsing, and validation errors.

    Raised when pipeline-studio.yaml (or the user config) cannot be parsed,
    fails Pydantic validation, or when an environment variable carries an
    invalid value.

    Attributes:
        message: Human-readable error message describing the configuration issue.
        field: Optional field name that caused the error (e.g., "max_template_depth").
        value: Optional value that failed validation (for debugging).

    Examples:
        ```python
        raise ConfigError(
            "Failed to parse pipeline-studio.yaml: invalid YAML syntax at line 4"
        )

        raise ConfigError(
            "Invalid configuration value",
            field="max_template_depth",
            value=0,
        )
        ```
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        """Initialize the ConfigError.

        Args:
            message: Human-readable error message.
            field: Optional field name that caused the error.
            value: Optional value that failed validation.
        """
        self.field = field
        self.value = value
        super().__init__(message)
