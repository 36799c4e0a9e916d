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

"""Tests for cluster_manager.orchestrator workflows and client construction."""

from __future__ import annotations

import os

import pytest
from kubernetes import client

from cluster_manager import clients as clients_module
from cluster_manager.argocd import ArgoCDReconciler
from cluster_manager.clients import KubeClients, build_clients
from cluster_manager.config import KubeConfig, ReadinessConfig, ReconcileConfig
from cluster_manager.constants import (
    FLUX_KUSTOMIZATION_PLURAL,
    FLUX_KUSTOMIZE_GROUP,
    FLUX_OCI_REPOSITORY_PLURAL,
    FLUX_RECONCILE_ANNOTATION,
    FLUX_SOURCE_GROUP,
)
from cluster_manager.errors import ReadinessError, UnknownResourceKindError
from cluster_manager.flux import FluxReconciler
from cluster_manager.orchestrator import (
    FluxStage,
    build_reconciler,
    run_flux_stage,
    run_reconcile,
    run_wait_api_server,
    run_wait_resources,
)
from cluster_manager.readiness import ReadinessCheck

from conftest import FAST_INTERVAL, FakeAppsApi, FakeCustomObjectsApi, FakeVersionApi, make_deployment

READY = {"status": {"observedGeneration": 1, "conditions": [{"type": "Ready", "status": "True"}]}}


def _kube_clients(
    apps: FakeAppsApi | None = None,
    version: FakeVersionApi | None = None,
    custom: FakeCustomObjectsApi | None = None,
) -> KubeClients:
    return KubeClients(
        apps=apps or FakeAppsApi(),
        version=version or FakeVersionApi(),
        custom_objects=custom or FakeCustomObjectsApi(),
    )


def _root(**extra: object) -> dict:
    return {"metadata": {"name": "flux-system", "generation": 1}, **extra}


class TestBuildReconciler:
    """Tests for engine selection."""

    def test_flux(self) -> None:
        """Flux is the default engine."""
        reconciler = build_reconciler(ReconcileConfig(flux_namespace="gitops"), _kube_clients())
        assert isinstance(reconciler, FluxReconciler)
        assert reconciler.namespace == "gitops"

    def test_argocd(self) -> None:
        """ArgoCD settings flow into the reconciler."""
        cfg = ReconcileConfig(gitops_engine="argocd", argocd_application="root")
        reconciler = build_reconciler(cfg, _kube_clients())
        assert isinstance(reconciler, ArgoCDReconciler)
        assert reconciler.application == "root"


class TestReconcileWorkflows:
    """Tests for run_reconcile and run_flux_stage."""

    def test_run_reconcile_flux(self) -> None:
        """A full Flux reconcile annotates both root resources."""
        custom = FakeCustomObjectsApi()
        custom.put(FLUX_SOURCE_GROUP, FLUX_OCI_REPOSITORY_PLURAL, "flux-system", _root(**READY))
        custom.put(FLUX_KUSTOMIZE_GROUP, FLUX_KUSTOMIZATION_PLURAL, "flux-system", _root(**READY))

        run_reconcile(
            ReconcileConfig(reconcile_timeout=5, poll_interval=FAST_INTERVAL),
            clients=_kube_clients(custom=custom),
        )

        assert len(custom.updates) == 2
        assert all(FLUX_RECONCILE_ANNOTATION in u["metadata"]["annotations"] for u in custom.updates)

    def test_trigger_stage_only(self) -> None:
        """A trigger stage writes without waiting."""
        custom = FakeCustomObjectsApi()
        custom.put(FLUX_SOURCE_GROUP, FLUX_OCI_REPOSITORY_PLURAL, "flux-system", _root())

        run_flux_stage(FluxStage.TRIGGER_OCI, ReconcileConfig(), clients=_kube_clients(custom=custom))

        assert len(custom.updates) == 1
        assert len(custom.get_calls) == 1

    def test_wait_kustomization_stage(self) -> None:
        """The Kustomization wait stage only reads."""
        custom = FakeCustomObjectsApi()
        custom.put(FLUX_KUSTOMIZE_GROUP, FLUX_KUSTOMIZATION_PLURAL, "flux-system", _root(**READY))

        run_flux_stage(
            FluxStage.WAIT_KUSTOMIZATION,
            ReconcileConfig(reconcile_timeout=5, poll_interval=FAST_INTERVAL),
            clients=_kube_clients(custom=custom),
        )

        assert custom.updates == []


class TestWaitWorkflows:
    """Tests for run_wait_api_server and run_wait_resources."""

    def test_api_server_stable(self) -> None:
        """The stable wait needs the configured number of successes."""
        version = FakeVersionApi(True, False, True, True)
        run_wait_api_server(
            ReadinessConfig(readiness_timeout=5, poll_interval=FAST_INTERVAL, api_stable_successes=2),
            stable=True,
            clients=_kube_clients(version=version),
        )
        # Four probes to reach the streak, then one connectivity check.
        assert version.calls == 5

    def test_resources(self) -> None:
        """Resources are waited for through the apps API."""
        apps = FakeAppsApi()
        apps.deployments[("default", "web")] = make_deployment()
        run_wait_resources(
            [ReadinessCheck("deployment", "default", "web")],
            ReadinessConfig(readiness_timeout=5, poll_interval=FAST_INTERVAL),
            clients=_kube_clients(apps=apps),
        )
        assert apps.calls == [("deployment", "default", "web")]

    def test_resources_missing(self) -> None:
        """A missing resource fails the workflow."""
        with pytest.raises(ReadinessError, match="deployment default/web not ready"):
            run_wait_resources(
                [ReadinessCheck("deployment", "default", "web")],
                ReadinessConfig(readiness_timeout=5, poll_interval=FAST_INTERVAL),
                clients=_kube_clients(),
            )

    def test_unknown_kind(self) -> None:
        """Unknown kinds surface unchanged."""
        with pytest.raises(UnknownResourceKindError):
            run_wait_resources([ReadinessCheck("job", "default", "x")], clients=_kube_clients())

    def test_no_checks_needs_no_cluster(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An empty list never builds clients."""

        def _fail(*_: object) -> KubeClients:
            raise AssertionError("clients should not be built")

        monkeypatch.setattr("cluster_manager.orchestrator.build_clients", _fail)
        run_wait_resources([])

    def test_unknown_kind_needs_no_cluster(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unknown kinds are rejected before any client is built."""

        def _fail(*_: object) -> KubeClients:
            raise AssertionError("clients should not be built")

        monkeypatch.setattr("cluster_manager.orchestrator.build_clients", _fail)
        with pytest.raises(UnknownResourceKindError, match="unknown resource type: foo"):
            run_wait_resources([
                ReadinessCheck("deployment", "default", "web"),
                ReadinessCheck("foo", "default", "x"),
            ])


class TestBuildClients:
    """Tests for build_clients."""

    def test_expands_path_and_passes_context(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The kubeconfig path is expanded and the context forwarded."""
        seen: dict[str, object] = {}

        def _new_client(config_file: str, context: str | None) -> client.ApiClient:
            seen.update(config_file=config_file, context=context)
            return client.ApiClient()

        monkeypatch.setattr(clients_module.config, "new_client_from_config", _new_client)
        kube_clients = build_clients(KubeConfig(kubeconfig="~/custom/kubeconfig", context="kind-dev"))

        assert seen == {"config_file": os.path.expanduser("~/custom/kubeconfig"), "context": "kind-dev"}
        assert isinstance(kube_clients.apps, client.AppsV1Api)
        assert isinstance(kube_clients.custom_objects, client.CustomObjectsApi)
