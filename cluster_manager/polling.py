# /*
# Copyright 2026 The Cluster Manager Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Deadline-bounded, fixed-interval polling built on tenacity.

Two primitives live here:

* ``poll_for_readiness`` wraps a boolean check. Errors raised by the check
  abort the poll at once; checks that want to keep polling through errors
  must swallow them and return False.
* ``poll_until_classified`` fetches a live object on every tick and lets a
  per-kind classifier decide between converged, transient and permanent.
  Every GitOps wait is built on it.

Neither keeps state between calls.
"""

from __future__ import annotations

import enum
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result

from cluster_manager import logger
from cluster_manager.constants import POLL_INTERVAL_SECONDS
from cluster_manager.errors import PollTimeoutError, ReadinessError


# ============================================================================
# Deadline
# ============================================================================

@dataclass(frozen=True)
class Deadline:
    """Absolute monotonic time bound, fixed when the wait starts."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(time.monotonic() + max(seconds, 0.0))

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


def _cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


def build_retrying(
    deadline: Deadline,
    interval: float,
    cancel: threading.Event | None = None,
    max_attempts: int | None = None,
    **kwargs: Any,
) -> Retrying:
    """Build a tenacity controller that polls until *deadline* or *cancel*.

    Sleeps are clamped to the time left so the final attempt lands on the
    deadline rather than past it. A set *cancel* event interrupts the sleep.

    Args:
        deadline: Absolute bound for the whole loop.
        interval: Seconds between attempts.
        cancel: Optional event that ends the loop at the next tick.
        max_attempts: Optional cap on the number of attempts.
        **kwargs: Extra ``Retrying`` arguments (``retry``, ``wait``...).

    Returns:
        A configured ``Retrying`` instance.
    """

    def _stop(retry_state: RetryCallState) -> bool:
        if max_attempts is not None and retry_state.attempt_number >= max_attempts:
            return True
        return deadline.expired() or _cancelled(cancel)

    def _wait(_: RetryCallState) -> float:
        return min(interval, deadline.remaining())

    kwargs.setdefault("wait", _wait)
    return Retrying(
        stop=_stop,
        sleep=cancel.wait if cancel is not None else time.sleep,
        **kwargs,
    )


def _timeout_message(timeout: float, cancel: threading.Event | None) -> str:
    if _cancelled(cancel):
        return "failed to poll for readiness: cancelled"
    return f"failed to poll for readiness: timed out after {timeout:g}s"


# ============================================================================
# Readiness poller
# ============================================================================

def poll_for_readiness(
    check: Callable[[], bool],
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Call *check* until it returns True, it raises, or time runs out.

    The first call happens immediately, then once per *interval*. Once
    *check* returns True it is never called again.

    Args:
        check: Zero-argument readiness predicate.
        timeout: Seconds before giving up.
        interval: Seconds between calls.
        cancel: Optional event that aborts the wait at the next tick.

    Raises:
        ReadinessError: If *check* raised; the original error is the cause.
        PollTimeoutError: If the deadline passed or *cancel* was set first.
    """
    deadline = Deadline.after(timeout)

    def _attempt() -> bool:
        if _cancelled(cancel):
            return False
        return check()

    retrying = build_retrying(
        deadline, interval, cancel,
        retry=retry_if_result(lambda ready: not ready),
    )
    try:
        retrying(_attempt)
    except RetryError:
        raise PollTimeoutError(_timeout_message(timeout, cancel)) from None
    except Exception as err:
        raise ReadinessError(f"failed to poll for readiness: {err}") from err


# ============================================================================
# Classified poller
# ============================================================================

class Convergence(enum.Enum):
    """Three-way verdict for one observation of a remote resource."""

    CONVERGED = "converged"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class Outcome:
    """Classification of one poll tick.

    Attributes:
        state: Converged, transient (keep polling) or permanent (abort).
        message: Human-readable status for diagnostics.
        error: The error to raise (permanent) or remember (transient).
    """

    state: Convergence
    message: str = ""
    error: BaseException | None = None

    @classmethod
    def converged(cls, message: str = "") -> Outcome:
        return cls(Convergence.CONVERGED, message)

    @classmethod
    def transient(cls, message: str = "", error: BaseException | None = None) -> Outcome:
        return cls(Convergence.TRANSIENT, message, error)

    @classmethod
    def permanent(cls, error: BaseException) -> Outcome:
        return cls(Convergence.PERMANENT, "", error)

    @property
    def ready(self) -> bool:
        return self.state is Convergence.CONVERGED


def poll_until_classified(
    fetch: Callable[[], Any],
    classify: Callable[[Any], Outcome],
    *,
    timeout: float,
    classify_error: Callable[[Exception], Outcome],
    on_timeout: Callable[[str, BaseException | None], BaseException],
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Poll a remote object until its classifier reports convergence.

    Args:
        fetch: Returns the live object; called once per tick.
        classify: Maps the fetched object to an ``Outcome``.
        timeout: Seconds before giving up.
        classify_error: Maps an exception raised by *fetch* to an ``Outcome``.
        on_timeout: Builds the timeout error from the last transient message
            and the last transient error.
        interval: Seconds between ticks.
        cancel: Optional event that aborts the wait at the next tick.

    Raises:
        BaseException: The permanent error from a classifier, or the error
            built by *on_timeout*.
    """
    deadline = Deadline.after(timeout)
    last_message = ""
    last_error: BaseException | None = None

    def _attempt() -> bool:
        nonlocal last_message, last_error
        if _cancelled(cancel):
            return False

        try:
            obj = fetch()
        except Exception as err:
            outcome = classify_error(err)
        else:
            outcome = classify(obj)

        if outcome.state is Convergence.PERMANENT:
            raise outcome.error
        if outcome.state is Convergence.CONVERGED:
            return True

        if outcome.message:
            last_message = outcome.message
        if outcome.error is not None:
            last_error = outcome.error
        logger.debug("Not converged yet: %s", outcome.message or outcome.error)
        return False

    retrying = build_retrying(
        deadline, interval, cancel,
        retry=retry_if_result(lambda converged: not converged),
    )
    try:
        retrying(_attempt)
    except RetryError:
        timeout_err = on_timeout(last_message, last_error)
        raise timeout_err from timeout_err.__cause__
