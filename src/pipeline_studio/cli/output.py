"""Message formatting for the pipeline-studio CLI."""

from __future__ import annotations

__all__ = [
    "format_error",
    "format_success",
]


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Example:
        >>> print(format_error(
        ...     "Template file not found: steps/build.yml",
        ...     details=["Path: /src/steps/build.yml"],
        ...     suggestion="Check the template path",
        ... ))
        Error: Template file not found: steps/build.yml
          Path: /src/steps/build.yml
        Suggestion: Check the template path
    """
    lines = [f"Error: {message}"]
    for detail in details or []:
        lines.append(f"  {detail}")
    if suggestion:
        lines.append(f"Suggestion: {suggestion}")
    return "\n".join(lines)


def format_success(message: str) -> str:
    return f"✓ {message}"
