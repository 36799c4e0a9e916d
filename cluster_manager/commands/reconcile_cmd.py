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

"""Reconcile subcommands (full reconcile and standalone Flux stages)."""

from __future__ import annotations

from enum import Enum

import typer

from cluster_manager.config import ReconcileConfig
from cluster_manager.orchestrator import FluxStage, run_flux_stage, run_reconcile

app = typer.Typer(help="Trigger GitOps reconciliation and wait for it to converge.")


class Engine(str, Enum):
    FLUX = "flux"
    ARGOCD = "argocd"


def _config(base: ReconcileConfig | None = None, **overrides) -> ReconcileConfig:
    cfg = base or ReconcileConfig()
    updates = {key: value for key, value in overrides.items() if value is not None}
    return cfg.model_copy(update=updates) if updates else cfg


@app.callback(invoke_without_command=True)
def reconcile(
    ctx: typer.Context,
    engine: Engine | None = typer.Option(None, "--engine", help="GitOps engine driving the cluster"),
    timeout: float | None = typer.Option(None, "--timeout", min=1, help="Seconds to wait for convergence"),
    hard_refresh: bool = typer.Option(False, "--hard-refresh", help="Bypass ArgoCD caches when refreshing"),
) -> None:
    """Reconcile the root GitOps workload (when no stage subcommand is given).

    Stage subcommands only exist for Flux and are rejected for other engines.
    """
    cfg = _config(
        gitops_engine=engine.value if engine is not None else None,
        reconcile_timeout=timeout,
        hard_refresh=True if hard_refresh else None,
    )
    if ctx.invoked_subcommand is None:
        run_reconcile(cfg)
        return

    if cfg.gitops_engine != Engine.FLUX.value:
        raise typer.BadParameter(
            f"'{ctx.invoked_subcommand}' is a Flux stage; the configured engine is {cfg.gitops_engine}",
            param_hint="--engine",
        )
    ctx.obj = cfg


@app.command("trigger-oci")
def trigger_oci(ctx: typer.Context) -> None:
    """Request reconciliation of the root Flux OCIRepository."""
    run_flux_stage(FluxStage.TRIGGER_OCI, ctx.obj)


@app.command("wait-oci")
def wait_oci(ctx: typer.Context) -> None:
    """Wait for the root Flux OCIRepository to fetch its artifact."""
    run_flux_stage(FluxStage.WAIT_OCI, ctx.obj)


@app.command("trigger-kustomization")
def trigger_kustomization(ctx: typer.Context) -> None:
    """Request reconciliation of the root Flux Kustomization."""
    run_flux_stage(FluxStage.TRIGGER_KUSTOMIZATION, ctx.obj)


@app.command("wait-kustomization")
def wait_kustomization(
    ctx: typer.Context,
    timeout: float | None = typer.Option(None, "--timeout", min=1, help="Seconds to wait for Ready"),
) -> None:
    """Wait for the root Flux Kustomization to become Ready."""
    run_flux_stage(FluxStage.WAIT_KUSTOMIZATION, _config(ctx.obj, reconcile_timeout=timeout))
