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

"""Shared fixtures and in-memory fakes for the Kubernetes APIs."""

from __future__ import annotations

import copy
import json
import os
from types import SimpleNamespace
from typing import Any

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from cluster_manager.config import RetryPolicy

FAST_INTERVAL = 0.01


def api_error(status: int, reason: str = "", status_reason: str | None = None) -> ApiException:
    """Build an ApiException shaped like a Kubernetes Status failure."""
    err = ApiException(status=status, reason=reason)
    if status_reason is not None:
        err.body = json.dumps({"kind": "Status", "status": "Failure", "reason": status_reason})
    return err


def make_deployment(
    replicas: int | None = 1,
    updated: int | None = 1,
    available: int | None = 1,
) -> SimpleNamespace:
    """Deployment stand-in carrying only the status the readiness predicate reads."""
    return SimpleNamespace(
        status=SimpleNamespace(
            replicas=replicas,
            updated_replicas=updated,
            available_replicas=available,
        ),
    )


def make_daemonset(
    desired: int = 1,
    updated: int | None = 1,
    unavailable: int | None = 0,
) -> SimpleNamespace:
    """DaemonSet stand-in carrying only the status the readiness predicate reads."""
    return SimpleNamespace(
        status=SimpleNamespace(
            desired_number_scheduled=desired,
            updated_number_scheduled=updated,
            number_unavailable=unavailable,
        ),
    )


class FakeAppsApi:
    """AppsV1Api stand-in backed by dicts; unknown objects raise 404."""

    def __init__(self) -> None:
        self.deployments: dict[tuple[str, str], Any] = {}
        self.daemonsets: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, str]] = []

    @staticmethod
    def _lookup(store: dict[tuple[str, str], Any], namespace: str, name: str) -> Any:
        value = store.get((namespace, name))
        if value is None:
            raise api_error(404, "Not Found", "NotFound")
        if isinstance(value, Exception):
            raise value
        return value

    def read_namespaced_deployment(self, name: str, namespace: str) -> Any:
        self.calls.append(("deployment", namespace, name))
        return self._lookup(self.deployments, namespace, name)

    def read_namespaced_daemon_set(self, name: str, namespace: str) -> Any:
        self.calls.append(("daemonset", namespace, name))
        return self._lookup(self.daemonsets, namespace, name)


class FakeVersionApi:
    """VersionApi stand-in replaying scripted probe results; the last one repeats."""

    def __init__(self, *results: bool | Exception) -> None:
        self.results = list(results) or [True]
        self.calls = 0

    def get_code(self) -> client.VersionInfo | None:
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(result, Exception):
            raise result
        if not result:
            raise ConnectionRefusedError("connection refused")
        return None


class FakeCustomObjectsApi:
    """CustomObjectsApi stand-in with resourceVersion optimistic concurrency.

    ``script`` queues snapshots served by successive gets (the last one
    sticks); ``get_errors`` and ``update_errors`` queue exceptions raised by
    the next calls before the store is consulted.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.scripts: dict[tuple[str, str, str, str], list[Any]] = {}
        self.get_errors: list[Exception] = []
        self.update_errors: list[Exception] = []
        self.get_calls: list[tuple[str, str, str, str]] = []
        self.updates: list[dict[str, Any]] = []

    def put(self, group: str, plural: str, namespace: str, obj: dict[str, Any]) -> None:
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("namespace", namespace)
        metadata.setdefault("resourceVersion", "1")
        self.objects[(group, plural, namespace, metadata["name"])] = obj

    def script(self, group: str, plural: str, namespace: str, name: str, *snapshots: Any) -> None:
        self.scripts[(group, plural, namespace, name)] = list(snapshots)

    def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str,
    ) -> dict[str, Any]:
        key = (group, plural, namespace, name)
        self.get_calls.append(key)
        if self.get_errors:
            raise self.get_errors.pop(0)

        script = self.scripts.get(key)
        if script:
            snapshot = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(snapshot, Exception):
                raise snapshot
            return copy.deepcopy(snapshot)

        obj = self.objects.get(key)
        if obj is None:
            raise api_error(404, "Not Found", "NotFound")
        return copy.deepcopy(obj)

    def replace_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: dict[str, Any],
    ) -> dict[str, Any]:
        if self.update_errors:
            raise self.update_errors.pop(0)

        key = (group, plural, namespace, name)
        current = self.objects.get(key)
        if current is None:
            raise api_error(404, "Not Found", "NotFound")
        if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise api_error(409, "Conflict", "Conflict")

        stored = copy.deepcopy(body)
        stored["metadata"]["resourceVersion"] = str(int(current["metadata"]["resourceVersion"]) + 1)
        self.objects[key] = stored
        self.updates.append(copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def annotations(self, group: str, plural: str, namespace: str, name: str) -> dict[str, str]:
        obj = self.objects[(group, plural, namespace, name)]
        return obj["metadata"].get("annotations") or {}


def conflict_after_get(api: FakeCustomObjectsApi, key: tuple[str, str, str, str], times: int) -> None:
    """Bump the stored resourceVersion after each of the next *times* gets.

    Simulates a controller writing status between our read and our write.
    """
    remaining = {"count": times}
    original_get = api.get_namespaced_custom_object

    def _get(group: str, version: str, namespace: str, plural: str, name: str) -> dict[str, Any]:
        obj = original_get(group, version, namespace, plural, name)
        if remaining["count"] > 0 and (group, plural, namespace, name) == key:
            remaining["count"] -= 1
            stored = api.objects[key]
            stored["metadata"]["resourceVersion"] = str(int(stored["metadata"]["resourceVersion"]) + 1)
        return obj

    api.get_namespaced_custom_object = _get  # type: ignore[method-assign]


@pytest.fixture
def apps_api() -> FakeAppsApi:
    return FakeAppsApi()


@pytest.fixture
def custom_api() -> FakeCustomObjectsApi:
    return FakeCustomObjectsApi()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy small enough to exhaust within a test."""
    return RetryPolicy(timeout=0.3, base_delay=0.01, max_delay=0.02)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CLUSTER_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("CLUSTER_"):
            monkeypatch.delenv(key)
