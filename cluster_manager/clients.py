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

"""Kubernetes API client construction."""

from __future__ import annotations

import os
from dataclasses import dataclass

from kubernetes import client, config

from cluster_manager import logger
from cluster_manager.config import KubeConfig


@dataclass(frozen=True)
class KubeClients:
    """Typed and dynamic API handles sharing one ApiClient."""

    apps: client.AppsV1Api
    version: client.VersionApi
    custom_objects: client.CustomObjectsApi

    @classmethod
    def from_api_client(cls, api_client: client.ApiClient) -> KubeClients:
        return cls(
            apps=client.AppsV1Api(api_client),
            version=client.VersionApi(api_client),
            custom_objects=client.CustomObjectsApi(api_client),
        )


def build_clients(kube_cfg: KubeConfig | None = None) -> KubeClients:
    """Build API clients from a kubeconfig file.

    Args:
        kube_cfg: Kubeconfig location and context, or None for defaults.

    Returns:
        Clients for the apps, version and custom objects APIs.
    """
    kube_cfg = kube_cfg or KubeConfig()
    path = os.path.expanduser(kube_cfg.kubeconfig)
    logger.debug("Loading kubeconfig %s (context: %s)", path, kube_cfg.context or "current")
    api_client = config.new_client_from_config(config_file=path, context=kube_cfg.context)
    return KubeClients.from_api_client(api_client)
