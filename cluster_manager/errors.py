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

"""Error taxonomy and transient/permanent classification of Kubernetes API failures.

Sentinel errors are exception classes; callers branch on them with
``isinstance`` or ``except``. Wrapped errors keep the original exception as
``__cause__`` so classification works through any number of wrapping layers.
"""

from __future__ import annotations

import enum
import json

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError, ReadTimeoutError

from cluster_manager.constants import (
    API_DISCOVERY_NO_MATCHES_KIND,
    API_DISCOVERY_NOT_FOUND,
    CONNECTION_ERROR_SUBSTRINGS,
    OCI_ERR_DOES_NOT_EXIST,
    OCI_ERR_MANIFEST_UNKNOWN,
    TRANSIENT_HTTP_STATUSES,
    TRANSIENT_STATUS_REASONS,
)

_CONNECTION_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    MaxRetryError,
    NewConnectionError,
    ProtocolError,
    ReadTimeoutError,
)


# ============================================================================
# Error types
# ============================================================================

class ClusterManagerError(RuntimeError):
    """Base class for all errors raised by cluster_manager."""


class SentinelError(ClusterManagerError):
    """Error with a fixed, operator-facing default message.

    An optional *detail* is appended as ``"<default>: <detail>"``.
    """

    default_message = "operation failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        message = f"{self.default_message}: {detail}" if detail else self.default_message
        super().__init__(message)


class ReadinessError(ClusterManagerError):
    """A readiness poll aborted because its check failed."""


class PollTimeoutError(ReadinessError):
    """A readiness poll ran out of time or was cancelled before success."""


class UnknownResourceKindError(ClusterManagerError):
    """A readiness check names a resource kind with no predicate."""

    def __init__(self, kind: object) -> None:
        self.kind = kind
        super().__init__(f"unknown resource type: {kind}")


class ReconcileTriggerError(ClusterManagerError):
    """Writing the reconcile request annotation failed or timed out."""


class ReconcileTimeoutError(SentinelError):
    default_message = (
        "timeout waiting for flux kustomization reconciliation - "
        "verify cluster health, Flux controllers status, and network/connectivity to the cluster"
    )


class OCIRepositoryNotReadyError(SentinelError):
    default_message = (
        "flux OCIRepository is not ready - "
        "ensure you have pushed an artifact to the cluster's OCI registry"
    )


class KustomizationFailedError(SentinelError):
    default_message = (
        "flux kustomization reconciliation failed - "
        "check the Kustomization status and Flux controller logs for details"
    )


class ArgoCDReconcileTimeoutError(SentinelError):
    default_message = "timeout waiting for argocd application sync"


class ArgoCDSourceNotAvailableError(SentinelError):
    default_message = (
        "argocd source is not available - "
        "ensure you have pushed an artifact to the cluster's OCI registry"
    )


class ArgoCDOperationFailedError(SentinelError):
    default_message = "argocd operation failed"


# ============================================================================
# Classification
# ============================================================================

class ErrorClass(enum.Enum):
    """Derived tag for a single error; never stored."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNCLASSIFIED = "unclassified"


def find_api_exception(err: BaseException | None) -> ApiException | None:
    """Return the first ApiException in *err*'s cause chain, if any."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, ApiException):
            return err
        seen.add(id(err))
        err = err.__cause__
    return None


def status_reason(err: ApiException) -> str:
    """Extract the ``reason`` field of the Kubernetes Status body.

    Args:
        err: API exception raised by the kubernetes client.

    Returns:
        The Status reason (e.g. ``Conflict``), or an empty string.
    """
    body = err.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body:
        return ""
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return ""
    if not isinstance(payload, dict):
        return ""
    reason = payload.get("reason")
    return reason if isinstance(reason, str) else ""


def is_not_found(err: BaseException | None) -> bool:
    """Check whether *err* wraps a Kubernetes NotFound response."""
    api_err = find_api_exception(err)
    if api_err is None:
        return False
    return api_err.status == 404 or status_reason(api_err) == "NotFound"


def is_api_discovery_error(message: str) -> bool:
    """Check if *message* indicates API discovery is incomplete (CRD not registered yet)."""
    return API_DISCOVERY_NOT_FOUND in message or API_DISCOVERY_NO_MATCHES_KIND in message


def is_connection_error(message: str) -> bool:
    """Check if *message* describes a low-level network failure."""
    return any(substr in message for substr in CONNECTION_ERROR_SUBSTRINGS)


def _has_connection_cause(err: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        if isinstance(current, _CONNECTION_EXCEPTIONS):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def is_transient_api_error(err: BaseException | None) -> bool:
    """Check whether *err* is expected to resolve itself and should be retried.

    Covers throttling and availability statuses, optimistic concurrency
    conflicts, NotFound (controllers create dependent objects asynchronously),
    REST discovery errors for CRDs that are not registered yet, and
    connection failures.

    Args:
        err: Error raised by a Kubernetes API call, possibly wrapped.

    Returns:
        True if the error is transient.
    """
    if err is None:
        return False

    api_err = find_api_exception(err)
    if api_err is not None and (
        api_err.status in TRANSIENT_HTTP_STATUSES
        or status_reason(api_err) in TRANSIENT_STATUS_REASONS
    ):
        return True

    if _has_connection_cause(err):
        return True

    message = str(err)
    return is_api_discovery_error(message) or is_connection_error(message)


def is_permanent_oci_error(err: BaseException | None) -> bool:
    """Check if *err* means the OCI artifact does not exist.

    Kubernetes NotFound is never permanent here: the OCIRepository object may
    simply not have been created yet.
    """
    if err is None or is_not_found(err):
        return False
    message = str(err)
    return OCI_ERR_MANIFEST_UNKNOWN in message or OCI_ERR_DOES_NOT_EXIST in message


def classify_error(err: BaseException) -> ErrorClass:
    """Classify *err* as transient, permanent, or unclassified.

    Unclassified errors are not Kubernetes API errors and callers treat them
    as fatal.
    """
    if is_transient_api_error(err):
        return ErrorClass.TRANSIENT
    if find_api_exception(err) is not None:
        return ErrorClass.PERMANENT
    return ErrorClass.UNCLASSIFIED
