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

"""Flux reconciliation: trigger and wait for the root OCIRepository and Kustomization."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from kubernetes import client

from cluster_manager import logger
from cluster_manager.config import RetryPolicy
from cluster_manager.constants import (
    CONDITION_FALSE,
    CONDITION_READY,
    CONDITION_STALLED,
    CONDITION_TRUE,
    FLUX_API_VERSION,
    FLUX_KUSTOMIZATION_PLURAL,
    FLUX_KUSTOMIZE_GROUP,
    FLUX_NAMESPACE,
    FLUX_OCI_REPOSITORY_PLURAL,
    FLUX_RECONCILE_ANNOTATION,
    FLUX_ROOT_KUSTOMIZATION,
    FLUX_ROOT_OCI_REPOSITORY,
    FLUX_SOURCE_GROUP,
    KUSTOMIZATION_PERMANENT_FAILURE_REASONS,
    OCI_PULL_FAILED_REASONS,
    OCI_REPOSITORY_READY_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
)
from cluster_manager.errors import (
    ClusterManagerError,
    KustomizationFailedError,
    OCIRepositoryNotReadyError,
    ReconcileTimeoutError,
    is_permanent_oci_error,
)
from cluster_manager.polling import Outcome, poll_until_classified
from cluster_manager.reconcile import (
    ReconcileOptions,
    ResourceClient,
    trigger_reconciliation_with_retry,
)


# ============================================================================
# Status helpers
# ============================================================================

def _conditions(obj: dict[str, Any]) -> list[dict[str, Any]]:
    conditions = (obj.get("status") or {}).get("conditions") or []
    return [c for c in conditions if isinstance(c, dict)]


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _generations(obj: dict[str, Any]) -> tuple[int, int]:
    generation = _as_int((obj.get("metadata") or {}).get("generation"))
    observed = _as_int((obj.get("status") or {}).get("observedGeneration"))
    return generation, observed


def is_status_stale(obj: dict[str, Any]) -> bool:
    """Check if the controller has not yet observed the latest spec generation."""
    generation, observed = _generations(obj)
    return observed < generation


# ============================================================================
# OCIRepository
# ============================================================================

def evaluate_oci_repository_conditions(conditions: Iterable[dict[str, Any]]) -> Outcome:
    """Classify an OCIRepository from its status conditions.

    Only the first Ready condition is considered. A pull failure means the
    artifact does not exist and will not appear by waiting.
    """
    for condition in conditions:
        if condition.get("type") != CONDITION_READY:
            continue
        if condition.get("status") == CONDITION_TRUE:
            return Outcome.converged(CONDITION_READY)
        reason = condition.get("reason", "")
        message = condition.get("message", "")
        if reason in OCI_PULL_FAILED_REASONS:
            return Outcome.permanent(OCIRepositoryNotReadyError(message))
        return Outcome.transient(f"{reason}: {message}")
    return Outcome.transient("waiting for Ready condition")


def check_oci_repository_status(obj: dict[str, Any]) -> Outcome:
    conditions = _conditions(obj)
    if not conditions:
        return Outcome.transient("no conditions yet")
    return evaluate_oci_repository_conditions(conditions)


def _classify_oci_get_error(err: Exception) -> Outcome:
    wrapped = ClusterManagerError(f"get flux oci repository: {err}")
    wrapped.__cause__ = err
    if is_permanent_oci_error(err):
        return Outcome.permanent(wrapped)
    return Outcome.transient(error=wrapped)


# ============================================================================
# Kustomization
# ============================================================================

def evaluate_kustomization_conditions(conditions: Iterable[dict[str, Any]]) -> Outcome:
    """Classify a Kustomization from its status conditions.

    Conditions are scanned in order: the first ``Ready=True`` converges and the
    first ``Stalled=True`` fails. Otherwise the last Ready condition decides
    between a terminal failure reason and a transient state.

    Args:
        conditions: ``status.conditions`` of a Kustomization.

    Returns:
        Converged with ``"Ready"``; permanent with a ``KustomizationFailedError``;
        or transient with a status string for diagnostics.
    """
    ready_status = ready_reason = ready_message = ""

    for condition in conditions:
        cond_type = condition.get("type", "")
        cond_status = condition.get("status", "")
        message = condition.get("message", "")

        if cond_type == CONDITION_READY:
            ready_status = cond_status
            ready_reason = condition.get("reason", "")
            ready_message = message
            if cond_status == CONDITION_TRUE:
                return Outcome.converged(CONDITION_READY)

        if cond_type == CONDITION_STALLED and cond_status == CONDITION_TRUE:
            return Outcome.permanent(KustomizationFailedError(f"stalled - {message}"))

    if ready_status == CONDITION_FALSE:
        if ready_reason in KUSTOMIZATION_PERMANENT_FAILURE_REASONS:
            return Outcome.permanent(
                KustomizationFailedError(f"{ready_reason} - {ready_message}")
            )
        return Outcome.transient(f"{ready_reason}: {ready_message}")

    return Outcome.transient("waiting for Ready condition")


def check_kustomization_status(obj: dict[str, Any]) -> Outcome:
    """Classify a fetched Kustomization.

    A status from an older generation is never trusted, so a stale
    ``Ready=True`` cannot end the wait early.
    """
    conditions = _conditions(obj)
    if not conditions:
        return Outcome.transient("no conditions yet")

    if is_status_stale(obj):
        generation, observed = _generations(obj)
        return Outcome.transient(
            f"waiting for controller (generation {generation}, observed {observed})"
        )

    return evaluate_kustomization_conditions(conditions)


def _abort_kustomization_get(err: Exception) -> Outcome:
    wrapped = ClusterManagerError(f"get flux kustomization status: {err}")
    wrapped.__cause__ = err
    return Outcome.permanent(wrapped)


# ============================================================================
# Reconciler
# ============================================================================

class FluxReconciler:
    """Drives the root Flux OCIRepository and Kustomization to a fresh, ready state.

    The OCIRepository wait has its own fixed timeout, independent of the
    timeout passed to ``reconcile``; a full reconcile can therefore take up
    to ``oci_ready_timeout`` plus ``ReconcileOptions.timeout`` plus the
    trigger retry budgets.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        *,
        namespace: str = FLUX_NAMESPACE,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        oci_ready_timeout: float = OCI_REPOSITORY_READY_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.namespace = namespace
        self.poll_interval = poll_interval
        self.oci_ready_timeout = oci_ready_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.oci_repositories = ResourceClient(
            custom_api, FLUX_SOURCE_GROUP, FLUX_API_VERSION, FLUX_OCI_REPOSITORY_PLURAL, namespace,
        )
        self.kustomizations = ResourceClient(
            custom_api, FLUX_KUSTOMIZE_GROUP, FLUX_API_VERSION, FLUX_KUSTOMIZATION_PLURAL, namespace,
        )

    def reconcile(
        self,
        options: ReconcileOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Trigger and wait for the OCIRepository, then the Kustomization.

        A failure in the OCIRepository stage aborts before the Kustomization
        is touched.
        """
        options = options or ReconcileOptions()
        self.trigger_oci_repository_reconciliation(cancel)
        self.wait_for_oci_repository_ready(cancel)
        self.trigger_kustomization_reconciliation(cancel)
        self.wait_for_kustomization_ready(options.timeout, cancel)

    def trigger_oci_repository_reconciliation(self, cancel: threading.Event | None = None) -> None:
        trigger_reconciliation_with_retry(
            self.oci_repositories,
            FLUX_ROOT_OCI_REPOSITORY,
            "flux oci repository",
            annotation_key=FLUX_RECONCILE_ANNOTATION,
            policy=self.retry_policy,
            cancel=cancel,
        )

    def trigger_kustomization_reconciliation(self, cancel: threading.Event | None = None) -> None:
        trigger_reconciliation_with_retry(
            self.kustomizations,
            FLUX_ROOT_KUSTOMIZATION,
            "flux kustomization",
            annotation_key=FLUX_RECONCILE_ANNOTATION,
            policy=self.retry_policy,
            cancel=cancel,
        )

    def wait_for_oci_repository_ready(self, cancel: threading.Event | None = None) -> None:
        """Wait until the root OCIRepository has fetched an artifact.

        Raises:
            OCIRepositoryNotReadyError: The controller reports a pull failure,
                or time ran out without any fetch error to report.
            ClusterManagerError: A permanent fetch error, or the last transient
                fetch error once time ran out.
        """

        def _on_timeout(_: str, last_error: BaseException | None) -> BaseException:
            return last_error if last_error is not None else OCIRepositoryNotReadyError()

        logger.info("Waiting for OCIRepository %s/%s", self.namespace, FLUX_ROOT_OCI_REPOSITORY)
        poll_until_classified(
            lambda: self.oci_repositories.get(FLUX_ROOT_OCI_REPOSITORY),
            check_oci_repository_status,
            timeout=self.oci_ready_timeout,
            classify_error=_classify_oci_get_error,
            on_timeout=_on_timeout,
            interval=self.poll_interval,
            cancel=cancel,
        )

    def wait_for_kustomization_ready(
        self,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Wait until the root Kustomization reports Ready for its latest generation.

        Args:
            timeout: Seconds to wait.
            cancel: Optional event that aborts the wait.

        Raises:
            KustomizationFailedError: The Kustomization is stalled or failed terminally.
            ReconcileTimeoutError: Time ran out; the message carries the last status.
            ClusterManagerError: Fetching the Kustomization failed.
        """

        def _on_timeout(last_status: str, _: BaseException | None) -> BaseException:
            return ReconcileTimeoutError(f"last status: {last_status}" if last_status else None)

        logger.info("Waiting for Kustomization %s/%s", self.namespace, FLUX_ROOT_KUSTOMIZATION)
        poll_until_classified(
            lambda: self.kustomizations.get(FLUX_ROOT_KUSTOMIZATION),
            check_kustomization_status,
            timeout=timeout,
            classify_error=_abort_kustomization_get,
            on_timeout=_on_timeout,
            interval=self.poll_interval,
            cancel=cancel,
        )
