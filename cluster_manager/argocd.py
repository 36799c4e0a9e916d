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

"""ArgoCD reconciliation: refresh the root Application and wait for it to sync."""

from __future__ import annotations

import threading
from typing import Any

from kubernetes import client

from cluster_manager import logger
from cluster_manager.config import RetryPolicy
from cluster_manager.constants import (
    ARGOCD_API_VERSION,
    ARGOCD_APPLICATION_PLURAL,
    ARGOCD_ERROR_CONDITION_TYPES,
    ARGOCD_FAILED_PHASES,
    ARGOCD_GROUP,
    ARGOCD_NAMESPACE,
    ARGOCD_REFRESH_ANNOTATION,
    ARGOCD_REFRESH_HARD,
    ARGOCD_REFRESH_NORMAL,
    ARGOCD_ROOT_APPLICATION,
    ARGOCD_SOURCE_PROBLEM_PATTERNS,
    POLL_INTERVAL_SECONDS,
)
from cluster_manager.errors import (
    ArgoCDOperationFailedError,
    ArgoCDReconcileTimeoutError,
    ArgoCDSourceNotAvailableError,
    ClusterManagerError,
)
from cluster_manager.polling import Outcome, poll_until_classified
from cluster_manager.reconcile import (
    ReconcileOptions,
    ResourceClient,
    trigger_reconciliation_with_retry,
)

SYNCED = "Synced"
HEALTHY = "Healthy"


def is_source_related_error(message: str) -> bool:
    """Check if *message* points at a missing or unreachable source artifact."""
    lowered = message.lower()
    return any(pattern in lowered for pattern in ARGOCD_SOURCE_PROBLEM_PATTERNS)


def check_application_status(app: dict[str, Any]) -> Outcome:
    """Classify an ArgoCD Application.

    A failed sync operation or a source-related comparison/sync error is
    permanent. The application converges once it is both Synced and Healthy.
    """
    status = app.get("status") or {}

    operation = status.get("operationState")
    if isinstance(operation, dict) and operation.get("phase") in ARGOCD_FAILED_PHASES:
        message = operation.get("message", "")
        if is_source_related_error(message):
            return Outcome.permanent(ArgoCDSourceNotAvailableError(message))
        return Outcome.permanent(ArgoCDOperationFailedError(message))

    for condition in status.get("conditions") or []:
        if not isinstance(condition, dict):
            continue
        message = condition.get("message", "")
        if condition.get("type") in ARGOCD_ERROR_CONDITION_TYPES and is_source_related_error(message):
            return Outcome.permanent(ArgoCDSourceNotAvailableError(message))

    sync_status = (status.get("sync") or {}).get("status", "")
    health_status = (status.get("health") or {}).get("status", "")
    if sync_status == SYNCED and health_status == HEALTHY:
        return Outcome.converged(f"{SYNCED}/{HEALTHY}")
    return Outcome.transient(f"sync {sync_status or 'Unknown'}, health {health_status or 'Unknown'}")


def _abort_application_get(err: Exception) -> Outcome:
    wrapped = ClusterManagerError(f"get argocd application: {err}")
    wrapped.__cause__ = err
    return Outcome.permanent(wrapped)


class ArgoCDReconciler:
    """Refreshes the root ArgoCD Application and waits for it to be Synced and Healthy."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        *,
        namespace: str = ARGOCD_NAMESPACE,
        application: str = ARGOCD_ROOT_APPLICATION,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.namespace = namespace
        self.application = application
        self.poll_interval = poll_interval
        self.retry_policy = retry_policy or RetryPolicy()
        self.applications = ResourceClient(
            custom_api, ARGOCD_GROUP, ARGOCD_API_VERSION, ARGOCD_APPLICATION_PLURAL, namespace,
        )

    def reconcile(
        self,
        options: ReconcileOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        options = options or ReconcileOptions()
        self.trigger_refresh(options.hard_refresh, cancel)
        self.wait_for_application_ready(options.timeout, cancel)

    def trigger_refresh(
        self,
        hard_refresh: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        """Request a refresh; a hard refresh also invalidates ArgoCD's manifest cache."""
        value = ARGOCD_REFRESH_HARD if hard_refresh else ARGOCD_REFRESH_NORMAL
        trigger_reconciliation_with_retry(
            self.applications,
            self.application,
            "argocd application",
            annotation_key=ARGOCD_REFRESH_ANNOTATION,
            annotation_value=lambda: value,
            policy=self.retry_policy,
            cancel=cancel,
        )

    def wait_for_application_ready(
        self,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Wait until the Application is Synced and Healthy.

        Raises:
            ArgoCDSourceNotAvailableError: The source artifact cannot be fetched.
            ArgoCDOperationFailedError: The sync operation failed.
            ArgoCDReconcileTimeoutError: Time ran out; the message carries the last status.
            ClusterManagerError: Fetching the Application failed.
        """

        def _on_timeout(last_status: str, _: BaseException | None) -> BaseException:
            return ArgoCDReconcileTimeoutError(f"last status: {last_status}" if last_status else None)

        logger.info("Waiting for Application %s/%s", self.namespace, self.application)
        poll_until_classified(
            lambda: self.applications.get(self.application),
            check_application_status,
            timeout=timeout,
            classify_error=_abort_application_get,
            on_timeout=_on_timeout,
            interval=self.poll_interval,
            cancel=cancel,
        )
