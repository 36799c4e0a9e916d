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

"""Configuration classes and config models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cluster_manager.constants import (
    API_AVAILABILITY_BASE_DELAY_SECONDS,
    API_AVAILABILITY_MAX_DELAY_SECONDS,
    API_AVAILABILITY_TIMEOUT_SECONDS,
    ARGOCD_NAMESPACE,
    ARGOCD_ROOT_APPLICATION,
    DEFAULT_API_STABLE_SUCCESSES,
    DEFAULT_KUBECONFIG,
    DEFAULT_READINESS_TIMEOUT_SECONDS,
    DEFAULT_RECONCILE_TIMEOUT_SECONDS,
    FLUX_NAMESPACE,
    POLL_INTERVAL_SECONDS,
)


# ============================================================================
# Configuration classes
# ============================================================================

class KubeConfig(BaseSettings):
    """Kubernetes connection settings, auto-loaded from CLUSTER_* env vars.

    Attributes:
        kubeconfig: Path to the kubeconfig file.
        context: Kubeconfig context to use, or None for the current context.
    """

    model_config = SettingsConfigDict(env_prefix="CLUSTER_", extra="ignore")

    kubeconfig: str = DEFAULT_KUBECONFIG
    context: str | None = None


class ReconcileConfig(BaseSettings):
    """GitOps reconciliation settings, auto-loaded from CLUSTER_* env vars.

    Attributes:
        gitops_engine: GitOps controller driving the cluster.
        reconcile_timeout: Seconds to wait for the root workload to converge.
        poll_interval: Seconds between status polls.
        flux_namespace: Namespace holding the root Flux resources.
        argocd_namespace: Namespace holding the root ArgoCD application.
        argocd_application: Name of the root ArgoCD application.
        hard_refresh: Whether ArgoCD refreshes should bypass caches.
    """

    model_config = SettingsConfigDict(env_prefix="CLUSTER_", extra="ignore")

    gitops_engine: Literal["flux", "argocd"] = "flux"
    reconcile_timeout: float = Field(default=DEFAULT_RECONCILE_TIMEOUT_SECONDS, ge=1)
    poll_interval: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    flux_namespace: str = FLUX_NAMESPACE
    argocd_namespace: str = ARGOCD_NAMESPACE
    argocd_application: str = ARGOCD_ROOT_APPLICATION
    hard_refresh: bool = False


class ReadinessConfig(BaseSettings):
    """Readiness wait settings, auto-loaded from CLUSTER_* env vars.

    Attributes:
        readiness_timeout: Seconds each readiness wait may take.
        poll_interval: Seconds between readiness probes.
        api_stable_successes: Consecutive API server probes required for stability.
    """

    model_config = SettingsConfigDict(env_prefix="CLUSTER_", extra="ignore")

    readiness_timeout: float = Field(default=DEFAULT_READINESS_TIMEOUT_SECONDS, ge=1)
    poll_interval: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    api_stable_successes: int = Field(default=DEFAULT_API_STABLE_SUCCESSES, ge=1)


# ============================================================================
# Retry policy
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for reconcile-trigger writes.

    Attributes:
        timeout: Overall seconds allowed across all attempts.
        base_delay: Seconds to wait after the first failed attempt.
        max_delay: Upper bound for the exponential backoff.
        max_attempts: Optional cap on attempts, or None for deadline-only.
    """

    timeout: float = API_AVAILABILITY_TIMEOUT_SECONDS
    base_delay: float = API_AVAILABILITY_BASE_DELAY_SECONDS
    max_delay: float = API_AVAILABILITY_MAX_DELAY_SECONDS
    max_attempts: int | None = None
