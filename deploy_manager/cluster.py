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

"""kind cluster lifecycle, registry credential injection, and image preloading."""

from __future__ import annotations

import json
import math
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from rich.panel import Panel

from deploy_manager import console, logger
from deploy_manager.config import KindSpec
from deploy_manager.constants import (
    DEFAULT_CLUSTER_NAME,
    DOCKER_CONFIG_ENV_VAR,
    DOCKER_CONFIG_FILE,
    DOCKER_CONFIG_TMP_PREFIX,
    GCLOUD_BINARY,
    KIND_BINARY,
    KIND_CONTEXT_PREFIX,
    KUBELET_CONFIG_PATH,
    REGISTRY_TOKEN_USER,
)
from deploy_manager.context import Context
from deploy_manager.errors import CommandError, DeployError
from deploy_manager.utils import Execer, check_dependencies, look_path


def render_docker_config(registries: list[str]) -> str:
    """Render a docker config listing each registry with an empty auth entry.

    ``docker login`` fills the entries in place.
    """
    return json.dumps({"auths": {r: {} for r in registries}}, indent=2) + "\n"


@contextmanager
def _env_override(name: str, value: str) -> Iterator[None]:
    """Set an environment variable for the duration of the block."""
    original = os.environ.get(name)
    os.environ[name] = value
    try:
        yield
    finally:
        if original is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = original


class KindCluster:
    """Cluster provider backed by the ``kind`` CLI.

    Args:
        spec: kind cluster spec.
        execer: Host command runner.
        look_path: Binary resolver used by the dependency check.
    """

    def __init__(
        self,
        spec: KindSpec,
        execer: Execer | None = None,
        look_path: Callable[[str], str | None] = look_path,
    ) -> None:
        self.spec = spec
        self.execer = execer or Execer()
        self._look_path = look_path

    def get_name(self) -> str:
        return self.spec.name or DEFAULT_CLUSTER_NAME

    @property
    def context_name(self) -> str:
        return f"{KIND_CONTEXT_PREFIX}{self.get_name()}"

    def _name_args(self) -> list[str]:
        return ["--name", self.spec.name] if self.spec.name else []

    def check_dependencies(self) -> None:
        bins = [KIND_BINARY]
        if self.spec.google_artifact_registries:
            bins.append(GCLOUD_BINARY)
        check_dependencies(bins, self._look_path)

    def create_args(self) -> list[str]:
        """Build the ``kind create cluster`` argument vector from the cluster settings."""
        args = ["create", "cluster", *self._name_args()]
        if self.spec.image:
            args += ["--image", self.spec.image]
        if self.spec.retain:
            args.append("--retain")
        if self.spec.wait:
            args += ["--wait", f"{math.ceil(self.spec.wait.total_seconds())}s"]
        if self.spec.kubecfg:
            args += ["--kubeconfig", self.spec.kubecfg]
        if self.spec.kind_config_file:
            args += ["--config", self.spec.kind_config_file]
        return args

    def deploy(self, ctx: Context | None = None) -> None:
        """Create the cluster (or recycle a reachable one) and prepare its nodes.

        Raises:
            MissingDependencyError: If kind (or gcloud) is not installed.
            CommandError: If any cluster, kubectl, docker or gcloud call fails.
        """
        self.check_dependencies()
        if self.spec.recycle:
            logger.info("Attempting to recycle existing cluster %r...", self.get_name())
            try:
                self.execer.run("kubectl", "cluster-info", "--context", self.context_name)
            except CommandError:
                logger.info("No reachable cluster %r, creating a new one", self.get_name())
            else:
                console.print(f"[green]✅ Recycling existing cluster '{self.get_name()}'[/green]")
                return

        args = self.create_args()
        logger.info("Creating kind cluster with: %s", args)
        try:
            self.execer.run(KIND_BINARY, *args)
        except CommandError as err:
            raise err.prefixed("failed to create cluster")
        console.print(f"[green]✅ Deployed kind cluster '{self.get_name()}'[/green]")

        for manifest in self.spec.additional_manifests:
            logger.info("Applying manifest %r", manifest)
            try:
                self.execer.run("kubectl", "apply", "-f", manifest)
            except CommandError as err:
                raise err.prefixed("failed to deploy manifest")

        if self.spec.google_artifact_registries:
            logger.info("Setting up registry access for %s", self.spec.google_artifact_registries)
            try:
                self.setup_registry_access()
            except DeployError as err:
                raise err.prefixed("failed to setup artifact registry access")

        if self.spec.container_images:
            logger.info("Loading container images")
            self.load_container_images()

    def setup_registry_access(self) -> None:
        """Give every node credentials for the configured private registries.

        A throwaway docker config directory is used so no credential helper
        from the user's config intercepts ``docker login``; the resulting
        config is copied to each node's kubelet, which is then restarted.
        """
        registries = self.spec.google_artifact_registries
        with tempfile.TemporaryDirectory(prefix=DOCKER_CONFIG_TMP_PREFIX) as tmp_dir, \
                _env_override(DOCKER_CONFIG_ENV_VAR, tmp_dir):
            config_path = Path(tmp_dir) / DOCKER_CONFIG_FILE
            config_path.write_text(render_docker_config(registries))

            with self.execer.capture() as buf:
                self.execer.run(GCLOUD_BINARY, "auth", "print-access-token")
            token = buf.getvalue().strip()

            for registry in registries:
                self.execer.run(
                    "docker", "login", "-u", REGISTRY_TOKEN_USER, "-p", token, f"https://{registry}",
                    redact=(token,),
                )

            for node in self.nodes():
                self.execer.run("docker", "cp", str(config_path), f"{node}:{KUBELET_CONFIG_PATH}")
                self.execer.run("docker", "exec", node, "systemctl", "restart", "kubelet.service")
        console.print(f"[green]✅ Registry credentials installed for {', '.join(registries)}[/green]")

    def nodes(self) -> list[str]:
        """List the node container names of the cluster."""
        with self.execer.capture() as buf:
            self.execer.run(KIND_BINARY, "get", "nodes", *self._name_args())
        return buf.getvalue().split()

    def load_container_images(self) -> None:
        """Pull, retag and load each configured image into the node image cache."""
        for src, dst in self.spec.container_images.items():
            logger.info("Loading %r as %r", src, dst)
            try:
                self.execer.run("docker", "pull", src)
            except CommandError as err:
                raise err.prefixed(f"failed to pull {src!r}")
            try:
                self.execer.run("docker", "tag", src, dst)
            except CommandError as err:
                raise err.prefixed(f"failed to tag {src!r} with {dst!r}")
            try:
                self.execer.run(KIND_BINARY, "load", "docker-image", dst, *self._name_args())
            except CommandError as err:
                raise err.prefixed(f"failed to load {dst!r}")
        console.print("[green]✅ Loaded all container images[/green]")

    def delete(self) -> None:
        try:
            self.execer.run(KIND_BINARY, "delete", "cluster", *self._name_args())
        except CommandError as err:
            raise err.prefixed("failed to delete cluster")

    def healthy(self, ctx: Context | None = None) -> None:
        """Single cluster-info probe; no polling."""
        try:
            self.execer.run("kubectl", "cluster-info", "--context", self.context_name)
        except CommandError as err:
            raise err.prefixed("cluster not healthy")
