"""
Candidate Ladder
----------------
Try ordered candidates, stop at the first accepted result.

Shared by the temperature ladder of the on-device router and the backoff
retry of the cloud router:
- a CapabilityError from one attempt is a non-match, the ladder moves on
- an AbortLadder from one attempt ends the ladder immediately
- the first result the acceptance predicate approves is returned
"""

from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from infra.logging import get_logger

from .errors import CapabilityError, ErrorCategory, RoutingError, SentinelError

C = TypeVar("C")
R = TypeVar("R")


class AbortLadder(SentinelError):
    """Raised by an attempt to stop the ladder without trying later candidates."""

    def __init__(self, cause: Exception):
        self.cause = cause
        self.category = getattr(cause, "category", self.category)
        super().__init__(str(cause))


async def try_candidates(
    candidates: Iterable[C],
    attempt: Callable[[C], Awaitable[Optional[R]]],
    accept: Callable[[R], bool],
    label: str = "ladder",
    failures: Optional[List[RoutingError]] = None,
) -> Optional[R]:
    """
    Run attempt() over candidates in order.

    Returns the first result for which accept() is true, or None when the
    candidates are exhausted or an attempt aborts the ladder. Absorbed
    failures are appended to `failures` when given.
    """
    logger = get_logger(f"retry.{label}")

    for candidate in candidates:
        try:
            result = await attempt(candidate)
        except AbortLadder as e:
            logger.info(f"{label}: aborted at {candidate!r}: {e}")
            if failures is not None:
                failures.append(RoutingError(category=e.category, message=str(e), stage=label))
            return None
        except CapabilityError as e:
            logger.warning(f"{label}: attempt {candidate!r} failed: {e}")
            if failures is not None:
                failures.append(RoutingError.from_exception(e, stage=label))
            continue

        if result is None:
            logger.debug(f"{label}: attempt {candidate!r} produced nothing")
            continue
        if accept(result):
            logger.debug(f"{label}: attempt {candidate!r} accepted")
            return result
        logger.debug(f"{label}: attempt {candidate!r} rejected")
        if failures is not None:
            failures.append(RoutingError(
                category=ErrorCategory.VALIDATION_REJECTED,
                message=f"attempt {candidate!r} rejected",
                stage=label,
            ))

    return None
