"""Error policies for validations that guard checkout.

    FAIL_OPEN    the guarded action proceeds when the check itself breaks
                 (cart six-bottle rule: a lost sale costs more than a
                 soft-rule violation an admin can fix later)
    FAIL_CLOSED  the guarded action is blocked (zone matching: an order
                 without known zones cannot be fulfilled)

Expected business outcomes are returned as result objects by the checks
themselves; only unexpected exceptions reach this runner.
"""

import enum
import logging
from typing import Awaitable, Callable, TypeVar

from vinepallet.middleware.exceptions import ServiceUnavailableError, VinePalletException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorPolicy(str, enum.Enum):
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


async def run_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: ErrorPolicy,
    *,
    fallback: Callable[[], T] | None = None,
    label: str = "validation",
) -> T:
    """Await `operation`, applying `policy` if it raises.

    VinePallet domain errors (not found, business rule) always propagate:
    they are answers, not failures of the check.
    """
    try:
        return await operation()
    except VinePalletException:
        raise
    except Exception:
        if policy is ErrorPolicy.FAIL_OPEN:
            logger.warning("%s failed; failing open", label, exc_info=True)
            if fallback is None:
                raise
            return fallback()
        logger.error("%s failed; failing closed", label, exc_info=True)
        raise ServiceUnavailableError(
            f"{label.capitalize()} is temporarily unavailable. Please try again.",
            error_code=f"{label.upper().replace(' ', '_')}_UNAVAILABLE",
        )
