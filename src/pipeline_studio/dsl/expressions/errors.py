"""Error types for ``${{ }}`` expression parsing.

Evaluation itself never raises: unresolved identifiers, paths and calls
degrade to UNDEFINED. Parsing does raise, and the evaluator catches
:class:`ExpressionSyntaxError` to fall back to dotted-path resolution.
"""

from __future__ import annotations

from pipeline_studio.exceptions import PipelineStudioError


class ExpressionError(PipelineStudioError):
    """Base exception for all expression-related errors.

    Attributes:
        message: Human-readable error message.
        expression: The expression that caused the error (if known).
    """

    def __init__(
        self,
        message: str,
        expression: str | None = None,
    ) -> None:
        self.expression = expression
        super().__init__(message)


class ExpressionSyntaxError(ExpressionError):
    """Exception raised when an expression body cannot be parsed.

    Attributes:
        message: Human-readable error message, with a caret under the
            offending column when the position is known.
        expression: The expression that failed to parse.
        position: 0-based character offset of the error.
    """

    def __init__(
        self,
        message: str,
        expression: str,
        position: int = 0,
    ) -> None:
        self.position = position
        if position > 0 and expression:
            error_line = f"{expression}\n{' ' * position}^"
            full_message = f"{message} at position {position}:\n{error_line}"
        else:
            full_message = f"{message}: {expression}"
        super().__init__(full_message, expression=expression)
