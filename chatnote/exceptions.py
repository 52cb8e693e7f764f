"""Exceptions raised by the context engine."""


class ChatNoteError(Exception):
    """Base class for all engine errors."""


class GenerationError(ChatNoteError):
    """Downstream generation failure with a user-presentable message."""

    def __init__(self, message: str, status: int | None = None) -> None:
        """Initialize GenerationError.

        Args:
            message: Sanitized message safe to show to the user.
            status: HTTP status reported by the service, when known.
        """
        super().__init__(message)
        self.status = status


class GenerationCancelledError(ChatNoteError):
    """The in-flight generation was cancelled by a newer turn or the user."""


class AllAttemptsFailedError(ChatNoteError):
    """Every candidate in a fallback chain failed."""

    def __init__(self, errors: dict[str, Exception]) -> None:
        """Initialize AllAttemptsFailedError.

        Args:
            errors: Failure per candidate, in the order they were tried.
        """
        names = ", ".join(errors) or "none"
        super().__init__(f"All candidates failed: {names}")
        self.errors = errors

    @property
    def last_error(self) -> Exception | None:
        if not self.errors:
            return None
        return list(self.errors.values())[-1]
