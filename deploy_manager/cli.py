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

"""
cli.py - command line entry point for topo-deploy.

Subcommands:
    deploy   Bring up cluster, ingress, CNI and controllers from a deployment file
    delete   Delete the cluster described by a deployment file
    healthy  Re-check readiness of every stage without deploying
    show     Print the parsed deployment file

Environment Variables:
    TOPO_DEPLOY_HEALTH_TIMEOUT (default: 60)
    TOPO_DEPLOY_KUBECONFIG     (default: $KUBECONFIG or ~/.kube/config)
    TOPO_DEPLOY_LOG_LEVEL      (default: INFO)

Examples:
    topo-deploy deploy deploy/kind.yaml
    topo-deploy healthy deploy/kind.yaml --health-timeout 120
    topo-deploy delete deploy/kind.yaml
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from deploy_manager import console
from deploy_manager.config import DeploySettings, load_deployment_config
from deploy_manager.context import Context
from deploy_manager.errors import DeployError
from deploy_manager.orchestrator import Deployment, new_deployment

app = typer.Typer(
    help="Deploy emulation clusters on kind.",
    no_args_is_help=True,
)

_state: dict = {}


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize settings and logging for all subcommands."""
    settings = DeploySettings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    _state["settings"] = settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _load(path: Path, health_timeout: float | None) -> Deployment:
    settings: DeploySettings = _state["settings"]
    cfg = load_deployment_config(path)
    return new_deployment(cfg, health_timeout=health_timeout or settings.health_timeout)


def _kubeconfig(override: str | None, deployment: Deployment) -> str:
    if override:
        return override
    spec = deployment.config.cluster.spec if deployment.config else None
    if spec is not None and spec.kubecfg:
        return spec.kubecfg
    return _state["settings"].kubeconfig


@app.command()
def deploy(
    path: Path = typer.Argument(..., help="Deployment file"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Kubeconfig for the cluster API"),
    health_timeout: Optional[float] = typer.Option(None, "--health-timeout", help="Seconds per readiness wait"),
) -> None:
    """Deploy the cluster and every add-on, waiting for each to be healthy."""
    d = _load(path, health_timeout)
    d.deploy(_kubeconfig(kubeconfig, d), Context())
    console.print("[green]✅ Deployment complete[/green]")


@app.command()
def delete(path: Path = typer.Argument(..., help="Deployment file")) -> None:
    """Delete the cluster."""
    _load(path, None).delete()


@app.command()
def healthy(
    path: Path = typer.Argument(..., help="Deployment file"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Kubeconfig for the cluster API"),
    health_timeout: Optional[float] = typer.Option(None, "--health-timeout", help="Seconds per readiness wait"),
) -> None:
    """Check readiness of every stage of an existing deployment."""
    d = _load(path, health_timeout)
    d.connect(_kubeconfig(kubeconfig, d))
    d.healthy(Context())


@app.command()
def show(path: Path = typer.Argument(..., help="Deployment file")) -> None:
    """Print the parsed deployment."""
    console.print(str(_load(path, None)), markup=False, highlight=False, soft_wrap=True)


def main() -> None:
    try:
        app()
    except DeployError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
