from __future__ import annotations


class PipelineStudioError(Exception):
    """Base exception class for all pipeline-studio errors.

    Every custom exception raised by the package inherits from this class so
    that callers (the CLI in particular) can catch expansion failures at a
    single boundary while letting system exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            expander.expand(source)
        except PipelineStudioError as e:
            logger.error(f"Expansion failed: {e.message}")
            sys.exit(1)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the PipelineStudioError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
