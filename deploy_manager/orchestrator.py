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

"""Staged deployment: cluster, ingress, CNI, then controllers."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from rich.panel import Panel

from deploy_manager import console, logger
from deploy_manager.cluster import KindCluster
from deploy_manager.cni import Meshnet
from deploy_manager.config import DeploymentConfig
from deploy_manager.constants import HEALTH_TIMEOUT_SECONDS, REQUIRED_BINARIES
from deploy_manager.context import Context
from deploy_manager.controllers import IxiaTG
from deploy_manager.errors import DeployError
from deploy_manager.ingress import MetalLB
from deploy_manager.kube import KubeClient
from deploy_manager.utils import Execer, check_dependencies, look_path

# ============================================================================
# Component contracts
# ============================================================================


class Cluster(Protocol):
    def deploy(self, ctx: Context) -> None: ...
    def delete(self) -> None: ...
    def healthy(self, ctx: Context) -> None: ...
    def get_name(self) -> str: ...


class Addon(Protocol):
    """Ingress, CNI and controller components share this contract."""

    def deploy(self, ctx: Context) -> None: ...
    def set_kube_client(self, kube: KubeClient) -> None: ...
    def healthy(self, ctx: Context) -> None: ...


Ingress = Addon
CNI = Addon
Controller = Addon


@contextmanager
def _stage(component: str, operation: str) -> Iterator[None]:
    """Tag any DeployError raised inside the block with its stage."""
    try:
        yield
    except DeployError as err:
        raise err.with_stage(component, operation)


# ============================================================================
# Deployment
# ============================================================================


class Deployment:
    """Brings up a cluster and its add-ons in order, one stage at a time.

    Every readiness wait gets its own deadline derived from the caller's
    context; a failure anywhere stops the sequence without undoing
    earlier stages.

    Args:
        cluster: Cluster provider.
        ingress: Load-balancer provider.
        cni: Network plugin provider.
        controllers: Controller add-ons, deployed in order.
        health_timeout: Seconds allowed for each readiness wait.
        look_path: Binary resolver for the pre-flight check.
        client_factory: Builds the cluster-API handle from a kubeconfig path.
    """

    def __init__(
        self,
        cluster: Cluster,
        ingress: Ingress,
        cni: CNI,
        controllers: Sequence[Controller] = (),
        *,
        health_timeout: float = HEALTH_TIMEOUT_SECONDS,
        look_path: Callable[[str], str | None] = look_path,
        client_factory: Callable[[str], KubeClient] = KubeClient.from_kubeconfig,
        config: DeploymentConfig | None = None,
    ) -> None:
        self.cluster = cluster
        self.ingress = ingress
        self.cni = cni
        self.controllers = list(controllers)
        self.health_timeout = health_timeout
        self._look_path = look_path
        self._client_factory = client_factory
        self.config = config

    def __str__(self) -> str:
        return self.describe()

    def describe(self) -> str:
        """Render the deployment configuration as indented JSON."""
        if self.config is not None:
            return json.dumps(self.config.model_dump(mode="json", by_alias=True), indent="\t")
        return json.dumps({
            "cluster": type(self.cluster).__name__,
            "ingress": type(self.ingress).__name__,
            "cni": type(self.cni).__name__,
            "controllers": [type(c).__name__ for c in self.controllers],
        }, indent="\t")

    def check_dependencies(self) -> None:
        check_dependencies(REQUIRED_BINARIES, self._look_path)

    def _wait_healthy(self, ctx: Context, name: str, component: Addon) -> None:
        with _stage(name, "healthy"):
            component.healthy(ctx.with_timeout(self.health_timeout))
        console.print(f"[green]✅ {name.capitalize()} healthy[/green]")

    def deploy(self, kubeconfig: str, ctx: Context | None = None) -> None:
        """Deploy every stage in order, waiting for each to become healthy.

        Args:
            kubeconfig: Kubeconfig written by the cluster, used to build the
                cluster-API handle shared by the later stages.
            ctx: Parent context; each wait gets a fresh deadline under it.

        Raises:
            MissingDependencyError: Listing every missing required binary.
            DeployError: The first failure of any stage, tagged with it.
        """
        ctx = ctx or Context()
        with _stage("deployment", "check dependencies"):
            self.check_dependencies()

        console.print(Panel.fit("Deploying cluster", style="bold blue"))
        with _stage("cluster", "deploy"):
            self.cluster.deploy(ctx)
        console.print("[green]✅ Cluster deployed[/green]")

        with _stage("cluster", "connect"):
            kube = self._client_factory(kubeconfig)

        console.print(Panel.fit("Deploying ingress", style="bold blue"))
        self.ingress.set_kube_client(kube)
        with _stage("ingress", "deploy"):
            self.ingress.deploy(ctx)
        self._wait_healthy(ctx, "ingress", self.ingress)

        console.print(Panel.fit("Deploying CNI", style="bold blue"))
        with _stage("cni", "deploy"):
            self.cni.deploy(ctx)
        self.cni.set_kube_client(kube)
        self._wait_healthy(ctx, "cni", self.cni)

        for i, controller in enumerate(self.controllers):
            name = f"controller[{i}]"
            console.print(Panel.fit(f"Deploying {type(controller).__name__} controller", style="bold blue"))
            with _stage(name, "deploy"):
                controller.deploy(ctx)
            controller.set_kube_client(kube)
            self._wait_healthy(ctx, name, controller)
        console.print("[green]✅ Controllers deployed and healthy[/green]")

    def connect(self, kubeconfig: str) -> KubeClient:
        """Build the cluster-API handle and hand it to every add-on.

        Used before :meth:`healthy` when probing an existing deployment.
        """
        with _stage("cluster", "connect"):
            kube = self._client_factory(kubeconfig)
        for component in (self.ingress, self.cni, *self.controllers):
            component.set_kube_client(kube)
        return kube

    def delete(self) -> None:
        """Delete the cluster; add-ons go with it."""
        logger.info("Deleting cluster...")
        with _stage("cluster", "delete"):
            self.cluster.delete()
        console.print("[green]✅ Cluster deleted[/green]")

    def healthy(self, ctx: Context | None = None) -> None:
        """Re-run every readiness check without deploying anything."""
        ctx = ctx or Context()
        with _stage("cluster", "healthy"):
            self.cluster.healthy(ctx)
        console.print("[green]✅ Cluster healthy[/green]")
        self._wait_healthy(ctx, "ingress", self.ingress)
        self._wait_healthy(ctx, "cni", self.cni)
        for i, controller in enumerate(self.controllers):
            self._wait_healthy(ctx, f"controller[{i}]", controller)
        console.print("[green]✅ Controllers healthy[/green]")


# ============================================================================
# Construction from a deployment file
# ============================================================================

_CONTROLLERS = {"IxiaTG": IxiaTG}


def new_deployment(
    cfg: DeploymentConfig,
    *,
    execer: Execer | None = None,
    health_timeout: float = HEALTH_TIMEOUT_SECONDS,
) -> Deployment:
    """Build a :class:`Deployment` from a validated deployment config.

    All components share one execer.
    """
    execer = execer or Execer()
    controllers = [_CONTROLLERS[c.kind](c.spec, execer=execer) for c in cfg.controllers]
    return Deployment(
        KindCluster(cfg.cluster.spec, execer=execer),
        MetalLB(cfg.ingress.spec, execer=execer),
        Meshnet(cfg.cni.spec, execer=execer),
        controllers,
        health_timeout=health_timeout,
        config=cfg,
    )
