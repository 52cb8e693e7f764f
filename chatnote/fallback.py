"""Try an ordered list of candidates until one succeeds."""

from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from .config import config
from .exceptions import AllAttemptsFailedError

logger = config.get_logger(__name__)

T = TypeVar("T")


async def first_success(
    candidates: Iterable[str],
    attempt: Callable[[str], Awaitable[T]],
    *,
    should_continue: Callable[[Exception], bool] | None = None,
) -> tuple[str, T]:
    """Run ``attempt`` for each candidate in order, returning the first result.

    Args:
        candidates: Candidate identifiers (usually model names), in priority order.
        attempt: Coroutine factory called with one candidate.
        should_continue: Decides whether a failure moves on to the next
            candidate. Failures it rejects are re-raised immediately.

    Returns:
        The candidate that succeeded and its result.

    Raises:
        AllAttemptsFailedError: If every candidate failed.
    """
    errors: dict[str, Exception] = {}
    for candidate in candidates:
        try:
            result = await attempt(candidate)
        except Exception as exc:
            if should_continue is not None and not should_continue(exc):
                raise
            logger.warning("Attempt with %s failed: %s", candidate, exc)
            errors[candidate] = exc
        else:
            return candidate, result

    raise AllAttemptsFailedError(errors)
