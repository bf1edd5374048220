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

"""Controller add-ons: the IxiaTG traffic-generator operator."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path

from deploy_manager import logger
from deploy_manager.config import IxiaTGConfigMap, IxiaTGSpec
from deploy_manager.constants import (
    IXIATG_CONFIGMAP_HEADER,
    IXIATG_CONFIGMAP_MANIFEST,
    IXIATG_CONFIGMAP_TMP_PREFIX,
    IXIATG_OPERATOR_MANIFEST,
    NS_IXIATG,
)
from deploy_manager.context import Context
from deploy_manager.errors import ConfigNotFoundError
from deploy_manager.health import deployment_healthy
from deploy_manager.kube import KubeClient
from deploy_manager.utils import Execer


def render_release_config(cfg: IxiaTGConfigMap) -> str:
    """Render the release config map manifest for a structured config.

    The config is embedded under the header's block scalar as JSON, indented
    to sit inside it.
    """
    body = json.dumps(cfg.model_dump(mode="json"), indent=2)
    return IXIATG_CONFIGMAP_HEADER + body.replace("\n", "\n    ")


class IxiaTG:
    """Controller provider for the IxiaTG operator.

    Args:
        spec: IxiaTG spec.
        execer: Host command runner.
        path_exists: File existence check for the static config map.
    """

    def __init__(
        self,
        spec: IxiaTGSpec,
        execer: Execer | None = None,
        path_exists: Callable[[str], bool] = os.path.exists,
    ) -> None:
        self.spec = spec
        self.execer = execer or Execer()
        self._path_exists = path_exists
        self.kube: KubeClient | None = None

    def set_kube_client(self, kube: KubeClient) -> None:
        self.kube = kube

    def deploy(self, ctx: Context | None = None) -> None:
        """Apply the operator and its release config map.

        Raises:
            CommandError: If an apply fails.
            ConfigNotFoundError: If no structured config is given and the
                static config map manifest is missing.
        """
        logger.info("Deploying IxiaTG controller from: %s", self.spec.manifests)
        self.execer.run("kubectl", "apply", "-f", str(Path(self.spec.manifests) / IXIATG_OPERATOR_MANIFEST))

        if self.spec.config_map is None:
            path = str(Path(self.spec.manifests) / IXIATG_CONFIGMAP_MANIFEST)
            if not self._path_exists(path):
                raise ConfigNotFoundError(f"ixia configmap not found: {path}")
            logger.info("Deploying IxiaTG configmap from: %s", path)
            self.execer.run("kubectl", "apply", "-f", path)
        else:
            self._apply_rendered(render_release_config(self.spec.config_map))
        logger.info("IxiaTG controller deployed")

    def _apply_rendered(self, manifest: str) -> None:
        tmp = tempfile.NamedTemporaryFile(
            "w", delete=False, prefix=IXIATG_CONFIGMAP_TMP_PREFIX, suffix=".yaml",
        )
        try:
            tmp.write(manifest)
            tmp.close()
            logger.info("Deploying IxiaTG configmap from: %s", tmp.name)
            self.execer.run("kubectl", "apply", "-f", tmp.name)
        finally:
            tmp.close()
            Path(tmp.name).unlink(missing_ok=True)

    def healthy(self, ctx: Context) -> None:
        deployment_healthy(ctx, self.kube, NS_IXIATG)
