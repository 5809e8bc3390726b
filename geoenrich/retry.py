"""Round/attempt retry schedule for the DHM coverage request.

A fetch gets up to ``rounds`` rounds of ``attempts`` quick attempts each.
Inside a round the wait before attempt *k* (k > 1) is ``2 ** (k - 1)``
seconds; between rounds there is a long fixed pause.  The schedule is a
small state machine so the sequence of waits can be inspected without
performing any I/O.
"""

import enum
import logging
import time
from typing import Callable, Optional

from .constants import DHM_MAX_ROUNDS, DHM_QUICK_RETRIES, DHM_ROUND_WAIT_S
from .errors import NetworkError

logger = logging.getLogger(__name__)


class RetryState(enum.Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    ROUND_WAIT = "round_wait"
    EXHAUSTED = "exhausted"


class TransientError(Exception):
    """Raised by an attempt to ask for another try."""


class RetrySchedule:
    def __init__(self, rounds: int = DHM_MAX_ROUNDS,
                 attempts: int = DHM_QUICK_RETRIES,
                 round_wait: float = DHM_ROUND_WAIT_S):
        self.rounds = rounds
        self.attempts = attempts
        self.round_wait = round_wait
        self.round = 1
        self.attempt = 1
        self.state = RetryState.ATTEMPTING
        self.delay: Optional[float] = None

    def record_failure(self) -> Optional[float]:
        """Advance after a failed attempt.

        Returns the number of seconds to wait before the next attempt, or
        ``None`` once the schedule is exhausted.
        """
        if self.state is RetryState.EXHAUSTED:
            return None
        if self.attempt < self.attempts:
            self.attempt += 1
            self.state = RetryState.BACKOFF
            self.delay = float(2 ** (self.attempt - 1))
        elif self.round < self.rounds:
            self.round += 1
            self.attempt = 1
            self.state = RetryState.ROUND_WAIT
            self.delay = float(self.round_wait)
        else:
            self.state = RetryState.EXHAUSTED
            self.delay = None
        return self.delay

    def resume(self):
        """Leave a wait state and start the next attempt."""
        if self.state in (RetryState.BACKOFF, RetryState.ROUND_WAIT):
            self.state = RetryState.ATTEMPTING
            self.delay = None

    @property
    def exhausted(self) -> bool:
        return self.state is RetryState.EXHAUSTED

    def waits(self):
        """Full list of waits a never-succeeding fetch would perform."""
        probe = RetrySchedule(self.rounds, self.attempts, self.round_wait)
        out = []
        while True:
            delay = probe.record_failure()
            if delay is None:
                return out
            out.append(delay)
            probe.resume()


def run_with_retry(attempt_fn: Callable[[], object],
                   schedule: Optional[RetrySchedule] = None,
                   sleep: Callable[[float], None] = time.sleep,
                   label: str = "request"):
    """Call *attempt_fn* until it returns, following *schedule*.

    ``attempt_fn`` raises :class:`TransientError` for failures worth
    retrying; any other exception propagates immediately.  When the
    schedule runs out a :class:`NetworkError` carrying the last transient
    message is raised.
    """
    schedule = schedule or RetrySchedule()
    last_err = ""
    while True:
        try:
            return attempt_fn()
        except TransientError as e:
            last_err = str(e)
            logger.debug(f"{label} round {schedule.round} attempt "
                         f"{schedule.attempt} failed: {last_err}")

        delay = schedule.record_failure()
        if delay is None:
            raise NetworkError(
                f"{label} failed after {schedule.rounds} rounds of "
                f"{schedule.attempts} attempts: {last_err}")

        if schedule.state is RetryState.ROUND_WAIT:
            logger.warning(f"{label} still failing after round "
                           f"{schedule.round - 1}. Waiting {delay:.0f}s "
                           f"before next round...")
        else:
            logger.info(f"{label} round {schedule.round}/{schedule.rounds} "
                        f"attempt {schedule.attempt}/{schedule.attempts} "
                        f"(retrying in {delay:.0f}s)...")
        sleep(delay)
        schedule.resume()
