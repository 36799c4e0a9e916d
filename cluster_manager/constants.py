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

"""Constants for Kubernetes resources, GitOps controllers, and polling defaults."""

from __future__ import annotations

# -- Polling --
POLL_INTERVAL_SECONDS = 2.0
DEFAULT_READINESS_TIMEOUT_SECONDS = 300.0
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 300.0
OCI_REPOSITORY_READY_TIMEOUT_SECONDS = 120.0
DEFAULT_API_STABLE_SUCCESSES = 3

# -- Trigger retry policy --
API_AVAILABILITY_TIMEOUT_SECONDS = 120.0
API_AVAILABILITY_BASE_DELAY_SECONDS = 2.0
API_AVAILABILITY_MAX_DELAY_SECONDS = 10.0

# -- Flux --
FLUX_NAMESPACE = "flux-system"
FLUX_ROOT_OCI_REPOSITORY = "flux-system"
FLUX_ROOT_KUSTOMIZATION = "flux-system"
FLUX_SOURCE_GROUP = "source.toolkit.fluxcd.io"
FLUX_KUSTOMIZE_GROUP = "kustomize.toolkit.fluxcd.io"
FLUX_API_VERSION = "v1"
FLUX_OCI_REPOSITORY_PLURAL = "ocirepositories"
FLUX_KUSTOMIZATION_PLURAL = "kustomizations"
FLUX_RECONCILE_ANNOTATION = "reconcile.fluxcd.io/requestedAt"

# -- ArgoCD --
ARGOCD_NAMESPACE = "argocd"
ARGOCD_ROOT_APPLICATION = "ksail"
ARGOCD_GROUP = "argoproj.io"
ARGOCD_API_VERSION = "v1alpha1"
ARGOCD_APPLICATION_PLURAL = "applications"
ARGOCD_REFRESH_ANNOTATION = "argocd.argoproj.io/refresh"
ARGOCD_REFRESH_NORMAL = "normal"
ARGOCD_REFRESH_HARD = "hard"
ARGOCD_FAILED_PHASES = ("Error", "Failed")
ARGOCD_ERROR_CONDITION_TYPES = ("ComparisonError", "SyncError")
ARGOCD_SOURCE_PROBLEM_PATTERNS = (
    "manifest unknown",
    "not found",
    "does not exist",
    "failed to fetch",
    "repository not found",
    "unable to resolve",
    "connection refused",
)

# -- Conditions --
CONDITION_READY = "Ready"
CONDITION_STALLED = "Stalled"
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"

OCI_PULL_FAILED_REASONS = ("OCIPullFailed", "OCIArtifactPullFailed")
KUSTOMIZATION_PERMANENT_FAILURE_REASONS = (
    "ReconciliationFailed",
    "ValidationFailed",
    "DependencyNotReady",
    "ArtifactFailed",
)

# -- Error message substrings --
OCI_ERR_MANIFEST_UNKNOWN = "manifest unknown"
OCI_ERR_DOES_NOT_EXIST = "does not exist"
API_DISCOVERY_NOT_FOUND = "the server could not find the requested resource"
API_DISCOVERY_NO_MATCHES_KIND = "no matches for kind"
CONNECTION_ERROR_SUBSTRINGS = ("connection refused", "connection reset", "i/o timeout", "EOF")

# -- Transient API status --
TRANSIENT_HTTP_STATUSES = frozenset({404, 409, 429, 503, 504})
TRANSIENT_STATUS_REASONS = frozenset({
    "NotFound",
    "Conflict",
    "TooManyRequests",
    "ServiceUnavailable",
    "Timeout",
    "ServerTimeout",
})

# -- Kubeconfig --
DEFAULT_KUBECONFIG = "~/.kube/config"
