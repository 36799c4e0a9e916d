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

"""Reconcile-request annotation writes against GitOps custom resources.

GitOps controllers pick up an annotation change as a request to reconcile
immediately. The write races the controller's own status updates, so every
retry re-reads the object to pick up the latest resourceVersion before
writing again.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, NoReturn

from kubernetes import client
from tenacity import RetryCallState, RetryError, retry_if_exception_type, wait_exponential

from cluster_manager import logger
from cluster_manager.config import RetryPolicy
from cluster_manager.constants import DEFAULT_RECONCILE_TIMEOUT_SECONDS
from cluster_manager.errors import ErrorClass, ReconcileTriggerError, classify_error
from cluster_manager.polling import Deadline, build_retrying


@dataclass(frozen=True)
class ReconcileOptions:
    """Options for a full reconcile.

    Attributes:
        timeout: Seconds to wait for the root workload to converge.
        hard_refresh: Ask ArgoCD to bypass its caches (ignored by Flux).
    """

    timeout: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    hard_refresh: bool = False


@dataclass(frozen=True)
class ResourceClient:
    """Custom-object client scoped to one group/version/resource and namespace."""

    api: client.CustomObjectsApi
    group: str
    version: str
    plural: str
    namespace: str

    def get(self, name: str) -> dict[str, Any]:
        return self.api.get_namespaced_custom_object(
            group=self.group,
            version=self.version,
            namespace=self.namespace,
            plural=self.plural,
            name=name,
        )

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace *obj*; the API rejects it with 409 if its resourceVersion is stale."""
        return self.api.replace_namespaced_custom_object(
            group=self.group,
            version=self.version,
            namespace=self.namespace,
            plural=self.plural,
            name=obj["metadata"]["name"],
            body=obj,
        )


def rfc3339_nano(epoch_ns: int | None = None) -> str:
    """Format a UTC timestamp as RFC 3339 with nanoseconds, trailing zeros trimmed.

    Args:
        epoch_ns: Nanoseconds since the epoch, or None for now.

    Returns:
        Timestamp such as ``2026-01-02T03:04:05.123456789Z``.
    """
    if epoch_ns is None:
        epoch_ns = time.time_ns()
    seconds, nanos = divmod(epoch_ns, 1_000_000_000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    fraction = f"{nanos:09d}".rstrip("0")
    return f"{stamp}.{fraction}Z" if fraction else f"{stamp}Z"


class _TransientTriggerError(Exception):
    """Internal marker for a retryable failure during a trigger attempt."""

    def __init__(self, phase: str, cause: Exception) -> None:
        super().__init__(str(cause))
        self.phase = phase
        self.cause = cause


def trigger_reconciliation_with_retry(
    resources: ResourceClient,
    name: str,
    description: str,
    *,
    annotation_key: str,
    annotation_value: Callable[[], str] = rfc3339_nano,
    policy: RetryPolicy | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Set a reconcile-request annotation, retrying transient failures.

    Each attempt fetches the resource, sets *annotation_key*, and writes it
    back. Transient failures (conflicts, throttling, CRDs or objects not
    there yet, connection errors) wait and start over from the fetch; any
    other failure aborts at once.

    Args:
        resources: Client for the resource's kind and namespace.
        name: Resource name.
        description: Human-readable kind used in error messages.
        annotation_key: Annotation the controller watches.
        annotation_value: Produces the annotation value for each attempt.
        policy: Retry budget, defaults to ``RetryPolicy()``.
        cancel: Optional event that aborts retrying.

    Raises:
        ReconcileTriggerError: On a permanent failure or when the retry
            budget runs out.
    """
    policy = policy or RetryPolicy()
    deadline = Deadline.after(policy.timeout)
    backoff = wait_exponential(
        multiplier=policy.base_delay, min=policy.base_delay, max=policy.max_delay,
    )

    def _wait(retry_state: RetryCallState) -> float:
        return min(backoff(retry_state), deadline.remaining())

    def _fail(phase: str, err: Exception, message: str) -> NoReturn:
        if classify_error(err) is ErrorClass.TRANSIENT:
            logger.debug("Transient error during %s of %s: %s", phase, description, err)
            raise _TransientTriggerError(phase, err) from err
        raise ReconcileTriggerError(message) from err

    def _attempt() -> None:
        if cancel is not None and cancel.is_set():
            raise ReconcileTriggerError(f"trigger {description} reconciliation: cancelled")

        try:
            resource = resources.get(name)
        except Exception as err:
            _fail("get", err, f"get {description}: {err}")

        metadata = resource.setdefault("metadata", {})
        annotations = dict(metadata.get("annotations") or {})
        annotations[annotation_key] = annotation_value()
        metadata["annotations"] = annotations

        try:
            resources.update(resource)
        except Exception as err:
            _fail("update", err, f"trigger {description} reconciliation: {err}")

    retrying = build_retrying(
        deadline, policy.base_delay, cancel,
        max_attempts=policy.max_attempts,
        retry=retry_if_exception_type(_TransientTriggerError),
        wait=_wait,
    )
    try:
        retrying(_attempt)
    except RetryError as err:
        last = err.last_attempt.exception()
        if cancel is not None and cancel.is_set():
            raise ReconcileTriggerError(f"trigger {description} reconciliation: cancelled") from last
        if not isinstance(last, _TransientTriggerError):
            raise ReconcileTriggerError(f"trigger {description} reconciliation: {last}") from last
        if last.phase == "get":
            msg = f"timed out waiting for {description} to be available: {last.cause}"
        else:
            msg = f"timed out updating {description}: {last.cause}"
        raise ReconcileTriggerError(msg) from last.cause

    logger.info("Requested %s reconciliation", description)
