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

"""Wait subcommands (api-server, deployment, daemonset, resources)."""

from __future__ import annotations

from pathlib import Path

import typer

from cluster_manager.config import ReadinessConfig
from cluster_manager.orchestrator import run_wait_api_server, run_wait_resources
from cluster_manager.readiness import (
    ReadinessCheck,
    ResourceKind,
    load_readiness_checks,
    parse_check,
)

app = typer.Typer(help="Wait for cluster resources to become ready.")

TIMEOUT_OPTION = typer.Option(None, "--timeout", min=1, help="Seconds to wait for each resource")


def _config(timeout: float | None, stable: int | None = None) -> ReadinessConfig:
    cfg = ReadinessConfig()
    updates: dict = {}
    if timeout is not None:
        updates["readiness_timeout"] = timeout
    if stable is not None:
        updates["api_stable_successes"] = stable
    return cfg.model_copy(update=updates) if updates else cfg


@app.command("api-server")
def api_server(
    timeout: float | None = TIMEOUT_OPTION,
    stable: int | None = typer.Option(
        None, "--stable", min=1, help="Require this many consecutive successful probes",
    ),
) -> None:
    """Wait for the Kubernetes API server to answer."""
    run_wait_api_server(_config(timeout, stable), stable=stable is not None)


@app.command()
def deployment(
    namespace: str = typer.Argument(..., help="Deployment namespace"),
    name: str = typer.Argument(..., help="Deployment name"),
    timeout: float | None = TIMEOUT_OPTION,
) -> None:
    """Wait for a Deployment to finish rolling out."""
    run_wait_resources([ReadinessCheck(ResourceKind.DEPLOYMENT, namespace, name)], _config(timeout))


@app.command()
def daemonset(
    namespace: str = typer.Argument(..., help="DaemonSet namespace"),
    name: str = typer.Argument(..., help="DaemonSet name"),
    timeout: float | None = TIMEOUT_OPTION,
) -> None:
    """Wait for a DaemonSet to be available on every node."""
    run_wait_resources([ReadinessCheck(ResourceKind.DAEMONSET, namespace, name)], _config(timeout))


@app.command()
def resources(
    check: list[str] | None = typer.Option(
        None, "--check", help="Resource to wait for as kind/namespace/name (repeatable)",
    ),
    file: Path | None = typer.Option(
        None, "--file", exists=True, dir_okay=False, help="YAML file listing readiness checks",
    ),
    timeout: float | None = TIMEOUT_OPTION,
) -> None:
    """Wait for several resources in order; file checks run after --check ones."""
    checks: list[ReadinessCheck] = []
    for spec in check or []:
        try:
            checks.append(parse_check(spec))
        except ValueError as err:
            raise typer.BadParameter(str(err), param_hint="--check") from err
    if file is not None:
        checks.extend(load_readiness_checks(file))
    run_wait_resources(checks, _config(timeout))
