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

"""Meshnet CNI deployment and daemon-set readiness."""

from __future__ import annotations

from deploy_manager import logger
from deploy_manager.config import MeshnetSpec
from deploy_manager.constants import MESHNET_DAEMONSET, NS_MESHNET
from deploy_manager.context import Context
from deploy_manager.health import daemonset_healthy
from deploy_manager.kube import KubeClient
from deploy_manager.utils import Execer


class Meshnet:
    """CNI provider applying the Meshnet kustomization."""

    def __init__(self, spec: MeshnetSpec, execer: Execer | None = None) -> None:
        self.spec = spec
        self.execer = execer or Execer()
        self.kube: KubeClient | None = None

    def set_kube_client(self, kube: KubeClient) -> None:
        self.kube = kube

    def deploy(self, ctx: Context | None = None) -> None:
        logger.info("Deploying Meshnet from: %s", self.spec.manifests)
        self.execer.run("kubectl", "apply", "-k", self.spec.manifests)
        logger.info("Meshnet deployed")

    def healthy(self, ctx: Context) -> None:
        """Watch the ``meshnet`` daemon set until every scheduled pod is ready."""
        daemonset_healthy(ctx, self.kube, NS_MESHNET, MESHNET_DAEMONSET)
