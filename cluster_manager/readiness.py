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

"""Readiness predicates for Deployments, DaemonSets and the API server.

Deployment and DaemonSet waits fail fast: any error fetching the object
aborts the wait, even one caused by the object not existing yet. API server
probes swallow every error because their purpose is to notice the moment the
server starts answering.
"""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from kubernetes import client

from cluster_manager import logger
from cluster_manager.constants import POLL_INTERVAL_SECONDS
from cluster_manager.errors import ReadinessError, UnknownResourceKindError
from cluster_manager.polling import poll_for_readiness


# ============================================================================
# Resource kinds and checks
# ============================================================================

class ResourceKind(str, enum.Enum):
    """Workload kinds the multi-resource waiter knows how to wait for."""

    DEPLOYMENT = "deployment"
    DAEMONSET = "daemonset"


@dataclass(frozen=True)
class ReadinessCheck:
    """One named resource for ``wait_for_multiple_resources``.

    Attributes:
        kind: Resource kind, as an enum member or a raw string from config.
        namespace: Namespace of the resource.
        name: Name of the resource.
    """

    kind: ResourceKind | str
    namespace: str
    name: str

    def describe(self) -> str:
        kind = self.kind.value if isinstance(self.kind, ResourceKind) else self.kind
        return f"{kind} {self.namespace}/{self.name}"


def resolve_kind(kind: ResourceKind | str) -> ResourceKind:
    """Map a raw kind to a ``ResourceKind``.

    Raises:
        UnknownResourceKindError: If *kind* has no predicate.
    """
    try:
        return ResourceKind(kind)
    except ValueError:
        raise UnknownResourceKindError(kind) from None


def parse_check(spec: str) -> ReadinessCheck:
    """Parse a ``kind/namespace/name`` string into a ``ReadinessCheck``.

    The kind is not validated here; the waiter rejects unknown kinds.
    """
    parts = spec.split("/")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"invalid readiness check '{spec}': expected kind/namespace/name")
    kind, namespace, name = parts
    return ReadinessCheck(kind=kind, namespace=namespace, name=name)


def load_readiness_checks(path: Path) -> list[ReadinessCheck]:
    """Load readiness checks from a YAML file.

    The file holds either a list of ``{kind, namespace, name}`` mappings or a
    mapping with such a list under ``checks``.

    Args:
        path: Path to the YAML file.

    Returns:
        Checks in file order.

    Raises:
        ValueError: If the document does not have the expected shape.
    """
    with open(path) as f:
        document = yaml.safe_load(f)

    entries: Any = document.get("checks") if isinstance(document, dict) else document
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a list of readiness checks")

    checks: list[ReadinessCheck] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: entry {idx} is not a mapping")
        missing = [key for key in ("kind", "namespace", "name") if not entry.get(key)]
        if missing:
            raise ValueError(f"{path}: entry {idx} is missing {', '.join(missing)}")
        checks.append(ReadinessCheck(
            kind=str(entry["kind"]),
            namespace=str(entry["namespace"]),
            name=str(entry["name"]),
        ))
    return checks


# ============================================================================
# Deployment and DaemonSet predicates
# ============================================================================

def deployment_is_ready(deployment: client.V1Deployment) -> bool:
    """All replicas are updated and available, with no special case for zero."""
    status = deployment.status
    replicas = (status.replicas or 0) if status else 0
    updated = (status.updated_replicas or 0) if status else 0
    available = (status.available_replicas or 0) if status else 0
    return replicas == updated == available


def daemonset_is_ready(daemonset: client.V1DaemonSet) -> bool:
    """Every scheduled pod is updated and none are unavailable."""
    status = daemonset.status
    desired = (status.desired_number_scheduled or 0) if status else 0
    updated = (status.updated_number_scheduled or 0) if status else 0
    unavailable = (status.number_unavailable or 0) if status else 0
    return desired == updated and unavailable == 0


def wait_for_deployment_ready(
    apps_api: client.AppsV1Api,
    namespace: str,
    name: str,
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Wait until a Deployment has rolled out completely.

    Raises:
        ReadinessError: If fetching the Deployment fails.
        PollTimeoutError: If it is not ready before *timeout*.
    """

    def _check() -> bool:
        try:
            deployment = apps_api.read_namespaced_deployment(name, namespace)
        except Exception as err:
            raise ReadinessError(f"failed to get deployment {namespace}/{name}: {err}") from err
        return deployment_is_ready(deployment)

    poll_for_readiness(_check, timeout, interval=interval, cancel=cancel)


def wait_for_daemonset_ready(
    apps_api: client.AppsV1Api,
    namespace: str,
    name: str,
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Wait until a DaemonSet runs an updated, available pod on every node.

    Raises:
        ReadinessError: If fetching the DaemonSet fails.
        PollTimeoutError: If it is not ready before *timeout*.
    """

    def _check() -> bool:
        try:
            daemonset = apps_api.read_namespaced_daemon_set(name, namespace)
        except Exception as err:
            raise ReadinessError(f"failed to get daemonset {namespace}/{name}: {err}") from err
        return daemonset_is_ready(daemonset)

    poll_for_readiness(_check, timeout, interval=interval, cancel=cancel)


# ============================================================================
# API server
# ============================================================================

def _probe_api_server(version_api: client.VersionApi) -> bool:
    try:
        version_api.get_code()
    except Exception as err:
        logger.debug("API server not responding yet: %s", err)
        return False
    return True


def wait_for_api_server_ready(
    version_api: client.VersionApi,
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Wait until the API server answers a version request.

    Raises:
        PollTimeoutError: If the server does not answer before *timeout*.
    """
    poll_for_readiness(
        lambda: _probe_api_server(version_api), timeout, interval=interval, cancel=cancel,
    )


def wait_for_api_server_stable(
    version_api: client.VersionApi,
    timeout: float,
    required_successes: int,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Wait until the API server answers *required_successes* probes in a row.

    A failed probe resets the streak to zero. Values below 1 mean 1.

    Raises:
        PollTimeoutError: If the streak is not reached before *timeout*.
    """
    required = max(required_successes, 1)
    consecutive = 0

    def _check() -> bool:
        nonlocal consecutive
        if _probe_api_server(version_api):
            consecutive += 1
        else:
            consecutive = 0
        return consecutive >= required

    poll_for_readiness(_check, timeout, interval=interval, cancel=cancel)


def check_api_server_connectivity(version_api: client.VersionApi) -> None:
    """Probe the API server once.

    Raises:
        ReadinessError: If the server does not answer.
    """
    try:
        version_api.get_code()
    except Exception as err:
        raise ReadinessError(f"API server connectivity check failed: {err}") from err


# ============================================================================
# Multi-resource waiter
# ============================================================================

ResourceWaiter = Callable[..., None]

_WAITERS: dict[ResourceKind, ResourceWaiter] = {
    ResourceKind.DEPLOYMENT: wait_for_deployment_ready,
    ResourceKind.DAEMONSET: wait_for_daemonset_ready,
}


def wait_for_multiple_resources(
    apps_api: client.AppsV1Api,
    checks: Iterable[ReadinessCheck],
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    cancel: threading.Event | None = None,
) -> None:
    """Wait for each resource in order, giving every one the full *timeout*.

    Checks run one after another, so the worst case is the sum of the
    per-check timeouts. The first failure stops the walk; later checks are
    not attempted. Unknown kinds are rejected before any API call.

    Args:
        apps_api: Apps API client.
        checks: Resources to wait for, in order.
        timeout: Seconds allowed for each individual check.
        interval: Seconds between polls.
        cancel: Optional event that aborts the current wait.

    Raises:
        UnknownResourceKindError: If any check names an unknown kind.
        ReadinessError: If a resource fails or times out; the message names it.
    """
    resolved = [(check, resolve_kind(check.kind)) for check in checks]

    for check, kind in resolved:
        logger.info("Waiting for %s to be ready", check.describe())
        try:
            _WAITERS[kind](
                apps_api, check.namespace, check.name, timeout,
                interval=interval, cancel=cancel,
            )
        except ReadinessError as err:
            raise type(err)(f"{check.describe()} not ready: {err}") from err
