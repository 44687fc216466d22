"""Bounded exponential backoff for remote calls and eventual-consistency polling."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential,
)

import config
import errors

T = TypeVar("T")

logger = config.get_logger(service="retries")


def is_transient(e: BaseException) -> bool:
    return isinstance(e, errors.RemoteCallFailed) and e.retryable


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "Retrying remote call",
        extra={
            "attempt": retry_state.attempt_number,
            "next_wait_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
            "error": outcome.exception() if outcome is not None and outcome.failed else None,
        },
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff bounded by a timeout and an attempt count.

    Attributes:
        timeout_seconds: Caller-visible deadline for all attempts together.
        initial_wait_seconds: Wait before the first retry, doubled on each attempt.
        max_wait_seconds: Cap on a single wait.
        max_attempts: Cap on the number of attempts.
        sleep: Sleep function, replaceable in tests.
    """

    timeout_seconds: float = 60
    initial_wait_seconds: float = 1
    max_wait_seconds: float = 10
    max_attempts: int = 10
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    @staticmethod
    def from_config(cfg: config.Config) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=cfg.retry_timeout_seconds,
            initial_wait_seconds=cfg.retry_initial_wait_seconds,
            max_wait_seconds=cfg.retry_max_wait_seconds,
            max_attempts=cfg.retry_max_attempts,
        )

    def with_timeout(self, timeout_seconds: float) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=timeout_seconds,
            initial_wait_seconds=self.initial_wait_seconds,
            max_wait_seconds=self.max_wait_seconds,
            max_attempts=self.max_attempts,
            sleep=self.sleep,
        )

    def _stop(self):  # noqa: ANN202
        # A retry whose backoff would end past the deadline is not started.
        return stop_before_delay(self.timeout_seconds) | stop_after_attempt(self.max_attempts)

    def _wait(self):  # noqa: ANN202
        return wait_exponential(multiplier=self.initial_wait_seconds, max=self.max_wait_seconds)

    def call(self, fn: Callable[[], T]) -> T:
        """Call fn, retrying transient remote failures. The last error is re-raised once the policy gives up."""
        retrying = Retrying(
            retry=retry_if_exception(is_transient),
            stop=self._stop(),
            wait=self._wait(),
            sleep=self.sleep,
            before_sleep=_log_before_sleep,
            reraise=True,
        )
        return retrying(fn)

    def wait_until(self, fn: Callable[[], T], condition: Callable[[T], bool], description: str) -> T:
        """Poll fn until condition holds on its result.

        Raises:
            ConsistencyTimeout: If the condition never held before the policy gave up.
        """

        def _give_up(retry_state: RetryCallState) -> T:
            outcome = retry_state.outcome
            if outcome is not None and outcome.failed:
                raise outcome.exception()  # type: ignore # noqa: PGH003
            raise errors.ConsistencyTimeout(
                description,
                self.timeout_seconds,
                last_observed=outcome.result() if outcome is not None else None,
                attempts=retry_state.attempt_number,
                elapsed_seconds=retry_state.seconds_since_start,
            )

        retrying = Retrying(
            retry=retry_if_exception(is_transient) | retry_if_result(lambda result: not condition(result)),
            stop=self._stop(),
            wait=self._wait(),
            sleep=self.sleep,
            before_sleep=_log_before_sleep,
            retry_error_callback=_give_up,
        )
        return retrying(fn)
