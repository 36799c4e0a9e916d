#!/usr/bin/env python3
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

"""
cli.py - GitOps reconciliation and readiness waits for Kubernetes clusters.

Subcommands:
    reconcile  Trigger a Flux or ArgoCD reconcile and wait for it to converge
    wait       Wait for the API server, Deployments, or DaemonSets

Examples:
    # Reconcile the root Flux Kustomization (default engine)
    ./cli.py reconcile

    # Reconcile the root ArgoCD application with a hard refresh
    ./cli.py reconcile --engine argocd --hard-refresh

    # Push an artifact between triggering and waiting
    ./cli.py reconcile trigger-oci
    ./cli.py reconcile wait-oci

    # Wait for several workloads in order
    ./cli.py wait resources --check deployment/kube-system/coredns --check daemonset/kube-system/cilium

Settings are also read from CLUSTER_* environment variables
(e.g. CLUSTER_KUBECONFIG, CLUSTER_GITOPS_ENGINE, CLUSTER_RECONCILE_TIMEOUT).

For detailed usage information, run: ./cli.py --help
"""

from __future__ import annotations

import logging
import sys

import typer

from cluster_manager import console
from cluster_manager.commands import reconcile_cmd, wait_cmd

app = typer.Typer(
    help="GitOps reconciliation and readiness waits for Kubernetes clusters.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(reconcile_cmd.app, name="reconcile")
app.add_typer(wait_cmd.app, name="wait")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
