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

"""CLI wiring tests using typer's CliRunner."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from cli import app
from cluster_manager.commands import reconcile_cmd, wait_cmd
from cluster_manager.orchestrator import FluxStage
from cluster_manager.readiness import ReadinessCheck, ResourceKind

runner = CliRunner()


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, tuple, dict]]:
    """Replace orchestration entry points with recorders."""
    recorded: list[tuple[str, tuple, dict]] = []

    def _recorder(name: str):
        def _record(*args: Any, **kwargs: Any) -> None:
            recorded.append((name, args, kwargs))
        return _record

    monkeypatch.setattr(reconcile_cmd, "run_reconcile", _recorder("reconcile"))
    monkeypatch.setattr(reconcile_cmd, "run_flux_stage", _recorder("flux_stage"))
    monkeypatch.setattr(wait_cmd, "run_wait_api_server", _recorder("api_server"))
    monkeypatch.setattr(wait_cmd, "run_wait_resources", _recorder("resources"))
    return recorded


class TestReconcileCommand:
    """Tests for the reconcile command group."""

    def test_defaults(self, calls: list) -> None:
        """Without flags the configured engine is used."""
        result = runner.invoke(app, ["reconcile"])
        assert result.exit_code == 0, result.output
        (name, args, _), = calls
        assert name == "reconcile"
        assert args[0].gitops_engine == "flux"
        assert not args[0].hard_refresh

    def test_flags_override_config(self, calls: list) -> None:
        """Flags override environment settings."""
        result = runner.invoke(app, ["reconcile", "--engine", "argocd", "--timeout", "60", "--hard-refresh"])
        assert result.exit_code == 0, result.output
        cfg = calls[0][1][0]
        assert cfg.gitops_engine == "argocd"
        assert cfg.reconcile_timeout == 60
        assert cfg.hard_refresh

    @pytest.mark.parametrize(("command", "stage"), [
        ("trigger-oci", FluxStage.TRIGGER_OCI),
        ("wait-oci", FluxStage.WAIT_OCI),
        ("trigger-kustomization", FluxStage.TRIGGER_KUSTOMIZATION),
    ])
    def test_stages(self, calls: list, command: str, stage: FluxStage) -> None:
        """Stage subcommands run only their stage."""
        result = runner.invoke(app, ["reconcile", command])
        assert result.exit_code == 0, result.output
        assert [(name, args[0]) for name, args, _ in calls] == [("flux_stage", stage)]

    def test_wait_kustomization_timeout(self, calls: list) -> None:
        """The Kustomization wait accepts its own timeout."""
        result = runner.invoke(app, ["reconcile", "wait-kustomization", "--timeout", "45"])
        assert result.exit_code == 0, result.output
        _, args, _ = calls[0]
        assert args[0] is FluxStage.WAIT_KUSTOMIZATION
        assert args[1].reconcile_timeout == 45

    @pytest.mark.parametrize("command", ["trigger-oci", "wait-oci", "trigger-kustomization", "wait-kustomization"])
    def test_stages_reject_argocd_flag(self, calls: list, command: str) -> None:
        """Flux stages refuse to run when Argo CD is selected on the command line."""
        result = runner.invoke(app, ["reconcile", "--engine", "argocd", command])
        assert result.exit_code == 2
        assert calls == []

    def test_stages_reject_argocd_env(self, calls: list, monkeypatch: pytest.MonkeyPatch) -> None:
        """Flux stages refuse to run when Argo CD is configured in the environment."""
        monkeypatch.setenv("CLUSTER_GITOPS_ENGINE", "argocd")
        result = runner.invoke(app, ["reconcile", "wait-oci"])
        assert result.exit_code == 2
        assert calls == []

    def test_group_timeout_reaches_stage(self, calls: list) -> None:
        """Group options apply to stage subcommands."""
        result = runner.invoke(app, ["reconcile", "--timeout", "90", "wait-kustomization"])
        assert result.exit_code == 0, result.output
        _, args, _ = calls[0]
        assert args[1].reconcile_timeout == 90

    def test_rejects_unknown_engine(self, calls: list) -> None:
        """Unknown engines are a usage error."""
        result = runner.invoke(app, ["reconcile", "--engine", "fleet"])
        assert result.exit_code == 2
        assert calls == []


class TestWaitCommand:
    """Tests for the wait command group."""

    def test_api_server_stable(self, calls: list) -> None:
        """--stable switches to the consecutive-success wait."""
        result = runner.invoke(app, ["wait", "api-server", "--stable", "5", "--timeout", "30"])
        assert result.exit_code == 0, result.output
        name, args, kwargs = calls[0]
        assert name == "api_server"
        assert kwargs["stable"] is True
        assert args[0].api_stable_successes == 5
        assert args[0].readiness_timeout == 30

    def test_deployment(self, calls: list) -> None:
        """A single Deployment becomes a one-element check list."""
        result = runner.invoke(app, ["wait", "deployment", "kube-system", "coredns"])
        assert result.exit_code == 0, result.output
        assert calls[0][1][0] == [ReadinessCheck(ResourceKind.DEPLOYMENT, "kube-system", "coredns")]

    def test_resources(self, calls: list, tmp_path: Path) -> None:
        """--check entries run before file entries, in order."""
        path = tmp_path / "checks.yaml"
        path.write_text("- {kind: daemonset, namespace: kube-system, name: cilium}\n")
        result = runner.invoke(app, [
            "wait", "resources",
            "--check", "deployment/default/web",
            "--check", "deployment/default/api",
            "--file", str(path),
        ])
        assert result.exit_code == 0, result.output
        assert calls[0][1][0] == [
            ReadinessCheck("deployment", "default", "web"),
            ReadinessCheck("deployment", "default", "api"),
            ReadinessCheck("daemonset", "kube-system", "cilium"),
        ]

    def test_resources_malformed_check(self, calls: list) -> None:
        """Malformed --check values are a usage error."""
        result = runner.invoke(app, ["wait", "resources", "--check", "deployment/web"])
        assert result.exit_code == 2
        assert calls == []
