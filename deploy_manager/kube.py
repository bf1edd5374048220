# /*
# Copyright 2026 The Topo Deploy Authors.
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

"""Cluster-API handle shared by the components once the cluster is up."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import urllib3
from kubernetes import client, config, watch
from kubernetes.config.config_exception import ConfigException

from deploy_manager.errors import ApiError

# Raised by the HTTP layer when the API server cannot be reached.
TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


@dataclass(frozen=True)
class KubeClient:
    """Typed API groups plus the watch factory used for readiness polling.

    Attributes:
        core: CoreV1 API (secrets, config maps).
        apps: AppsV1 API (deployments, daemon sets).
        watch_factory: Callable returning an object with ``stream`` and
            ``stop`` like :class:`kubernetes.watch.Watch`.
    """

    core: Any
    apps: Any
    watch_factory: Callable[[], Any] = field(default=watch.Watch)

    @classmethod
    def from_kubeconfig(cls, path: str) -> KubeClient:
        """Build a client from a kubeconfig file.

        Args:
            path: Path to the kubeconfig written by the cluster tool.

        Raises:
            ApiError: If the kubeconfig cannot be loaded.
        """
        try:
            api_client = config.new_client_from_config(config_file=path)
        except (ConfigException, OSError) as err:
            raise ApiError(f"failed to load kubeconfig {path!r}: {err}") from err
        return cls(core=client.CoreV1Api(api_client), apps=client.AppsV1Api(api_client))
