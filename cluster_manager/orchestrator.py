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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

import enum
from collections.abc import Sequence

from rich.panel import Panel

from cluster_manager import console, logger
from cluster_manager.argocd import ArgoCDReconciler
from cluster_manager.clients import KubeClients, build_clients
from cluster_manager.config import KubeConfig, ReadinessConfig, ReconcileConfig
from cluster_manager.flux import FluxReconciler
from cluster_manager.readiness import (
    ReadinessCheck,
    check_api_server_connectivity,
    wait_for_api_server_ready,
    wait_for_api_server_stable,
    resolve_kind,
    wait_for_multiple_resources,
)
from cluster_manager.reconcile import ReconcileOptions


class FluxStage(str, enum.Enum):
    """Standalone Flux reconcile steps, for flows that push an artifact in between."""

    TRIGGER_OCI = "trigger-oci"
    WAIT_OCI = "wait-oci"
    TRIGGER_KUSTOMIZATION = "trigger-kustomization"
    WAIT_KUSTOMIZATION = "wait-kustomization"


# ============================================================================
# Internal helpers
# ============================================================================

def _clients(clients: KubeClients | None, kube_cfg: KubeConfig | None) -> KubeClients:
    return clients if clients is not None else build_clients(kube_cfg)


def build_reconciler(
    cfg: ReconcileConfig,
    clients: KubeClients,
) -> FluxReconciler | ArgoCDReconciler:
    """Create the reconciler for the configured GitOps engine."""
    if cfg.gitops_engine == "argocd":
        return ArgoCDReconciler(
            clients.custom_objects,
            namespace=cfg.argocd_namespace,
            application=cfg.argocd_application,
            poll_interval=cfg.poll_interval,
        )
    return FluxReconciler(
        clients.custom_objects,
        namespace=cfg.flux_namespace,
        poll_interval=cfg.poll_interval,
    )


# ============================================================================
# Public API
# ============================================================================

def run_reconcile(
    cfg: ReconcileConfig | None = None,
    *,
    kube_cfg: KubeConfig | None = None,
    clients: KubeClients | None = None,
) -> None:
    """Trigger a GitOps reconcile and wait for the root workload to converge.

    Args:
        cfg: Reconcile settings, or None for environment defaults.
        kube_cfg: Kubeconfig settings used when *clients* is None.
        clients: Pre-built API clients.

    Raises:
        ClusterManagerError: If triggering or waiting fails.
    """
    cfg = cfg or ReconcileConfig()
    clients = _clients(clients, kube_cfg)

    console.print(Panel.fit(f"Reconciling workloads ({cfg.gitops_engine})", style="bold blue"))
    reconciler = build_reconciler(cfg, clients)
    options = ReconcileOptions(timeout=cfg.reconcile_timeout, hard_refresh=cfg.hard_refresh)
    reconciler.reconcile(options)
    console.print("[green]\u2705 Workloads reconciled[/green]")


def run_flux_stage(
    stage: FluxStage,
    cfg: ReconcileConfig | None = None,
    *,
    kube_cfg: KubeConfig | None = None,
    clients: KubeClients | None = None,
) -> None:
    """Run a single Flux trigger or wait step.

    Args:
        stage: Step to run.
        cfg: Reconcile settings, or None for environment defaults.
        kube_cfg: Kubeconfig settings used when *clients* is None.
        clients: Pre-built API clients.
    """
    cfg = cfg or ReconcileConfig()
    reconciler = FluxReconciler(
        _clients(clients, kube_cfg).custom_objects,
        namespace=cfg.flux_namespace,
        poll_interval=cfg.poll_interval,
    )

    if stage is FluxStage.TRIGGER_OCI:
        reconciler.trigger_oci_repository_reconciliation()
        console.print("[green]\u2705 OCIRepository reconciliation requested[/green]")
    elif stage is FluxStage.WAIT_OCI:
        console.print("[yellow]\u2139\ufe0f  Waiting for OCIRepository to be ready...[/yellow]")
        reconciler.wait_for_oci_repository_ready()
        console.print("[green]\u2705 OCIRepository is ready[/green]")
    elif stage is FluxStage.TRIGGER_KUSTOMIZATION:
        reconciler.trigger_kustomization_reconciliation()
        console.print("[green]\u2705 Kustomization reconciliation requested[/green]")
    else:
        console.print("[yellow]\u2139\ufe0f  Waiting for Kustomization to be ready...[/yellow]")
        reconciler.wait_for_kustomization_ready(cfg.reconcile_timeout)
        console.print("[green]\u2705 Kustomization is ready[/green]")


def run_wait_api_server(
    cfg: ReadinessConfig | None = None,
    *,
    stable: bool = False,
    kube_cfg: KubeConfig | None = None,
    clients: KubeClients | None = None,
) -> None:
    """Wait for the API server to answer, optionally several times in a row.

    Args:
        cfg: Readiness settings, or None for environment defaults.
        stable: Require ``cfg.api_stable_successes`` consecutive answers.
        kube_cfg: Kubeconfig settings used when *clients* is None.
        clients: Pre-built API clients.
    """
    cfg = cfg or ReadinessConfig()
    version_api = _clients(clients, kube_cfg).version

    console.print(Panel.fit("Waiting for API server", style="bold blue"))
    if stable:
        wait_for_api_server_stable(
            version_api, cfg.readiness_timeout, cfg.api_stable_successes,
            interval=cfg.poll_interval,
        )
    else:
        wait_for_api_server_ready(version_api, cfg.readiness_timeout, interval=cfg.poll_interval)
    check_api_server_connectivity(version_api)
    console.print("[green]\u2705 API server is ready[/green]")


def run_wait_resources(
    checks: Sequence[ReadinessCheck],
    cfg: ReadinessConfig | None = None,
    *,
    kube_cfg: KubeConfig | None = None,
    clients: KubeClients | None = None,
) -> None:
    """Wait for Deployments and DaemonSets, one after another.

    Args:
        checks: Resources to wait for, in order.
        cfg: Readiness settings, or None for environment defaults.
        kube_cfg: Kubeconfig settings used when *clients* is None.
        clients: Pre-built API clients.

    Raises:
        UnknownResourceKindError: If a check names an unknown kind; raised
            before any client is built.
        ReadinessError: If a resource fails or times out.
    """
    cfg = cfg or ReadinessConfig()
    if not checks:
        logger.info("No readiness checks given, nothing to wait for")
        return

    for check in checks:
        resolve_kind(check.kind)

    apps_api = _clients(clients, kube_cfg).apps
    console.print(Panel.fit(f"Waiting for {len(checks)} resource(s)", style="bold blue"))
    wait_for_multiple_resources(apps_api, checks, cfg.readiness_timeout, interval=cfg.poll_interval)
    for check in checks:
        console.print(f"[green]  \u2713 {check.describe()}[/green]")
    console.print("[green]\u2705 All resources are ready[/green]")
