"""
Readiness polling for asynchronous cloud state transitions.

The poller runs a check immediately and then once per interval until the
check reports READY or ERRORED, or until the attempt or deadline limit runs
out, in which case a TIMEOUT result is returned.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from healthylinkx.models.enums import PollState

logger = logging.getLogger(__name__)


@dataclass
class PollOutcome:
    """
    Result of a single readiness check.

    Attributes:
        state: READY, NOT_READY or ERRORED
        status: Current remote status, for logging
        reason: Failure description when ERRORED
    """
    state: PollState
    status: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ready(cls, status: Optional[str] = None) -> 'PollOutcome':
        return cls(PollState.READY, status)

    @classmethod
    def not_ready(cls, status: Optional[str] = None) -> 'PollOutcome':
        return cls(PollState.NOT_READY, status)

    @classmethod
    def errored(cls, reason: str, status: Optional[str] = None) -> 'PollOutcome':
        return cls(PollState.ERRORED, status, reason)


@dataclass
class PollResult:
    """
    Terminal result of await_condition.

    Attributes:
        state: READY, ERRORED or TIMEOUT
        attempts: Number of checks performed
        status: Last status reported by the check
        reason: Failure description for ERRORED/TIMEOUT
    """
    state: PollState
    attempts: int
    status: Optional[str] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PollState.READY


async def await_condition(
    check: Callable[[], Awaitable[PollOutcome]],
    interval_seconds: float = 30,
    max_attempts: Optional[int] = None,
    deadline_seconds: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = 'condition'
) -> PollResult:
    """
    Wait until ``check`` reports READY or ERRORED.

    Args:
        check: Async callable returning a PollOutcome
        interval_seconds: Sleep between consecutive checks
        max_attempts: Maximum number of checks (unbounded when None)
        deadline_seconds: Maximum elapsed time (unbounded when None)
        sleep: Sleep coroutine, replaceable in tests
        description: Label used in log messages

    Returns:
        PollResult with state READY, ERRORED or TIMEOUT

    Raises:
        Any exception raised by ``check`` is propagated
    """
    started = time.monotonic()
    attempts = 0
    last_status: Optional[str] = None

    while True:
        outcome = await check()
        attempts += 1
        last_status = outcome.status

        if outcome.state is PollState.READY:
            logger.info(f"{description} ready after {attempts} check(s)")
            return PollResult(PollState.READY, attempts, last_status)

        if outcome.state is PollState.ERRORED:
            logger.error(f"{description} errored: {outcome.reason}")
            return PollResult(PollState.ERRORED, attempts, last_status, outcome.reason)

        if max_attempts is not None and attempts >= max_attempts:
            break
        if deadline_seconds is not None and (
            time.monotonic() - started + interval_seconds > deadline_seconds
        ):
            break

        logger.info(f"Waiting. {description} {last_status}")
        await sleep(interval_seconds)

    reason = f"{description} not ready after {attempts} check(s), last status {last_status}"
    logger.error(reason)
    return PollResult(PollState.TIMEOUT, attempts, last_status, reason)
