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

"""Deployment specs, runtime settings, and deployment-file loading."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deploy_manager.constants import (
    DEFAULT_KUBECONFIG,
    ENV_PREFIX,
    HEALTH_TIMEOUT_SECONDS,
)
from deploy_manager.errors import ConfigNotFoundError, DeployError

_GO_DURATION = re.compile(r"^(?:(\d+(?:\.\d+)?)h)?(?:(\d+(?:\.\d+)?)m)?(?:(\d+(?:\.\d+)?)s)?(?:(\d+(?:\.\d+)?)ms)?$")


def parse_duration(value: Any) -> Any:
    """Accept Go-style durations (``90s``, ``5m``, ``1h30m``, ``500ms``) for timedelta fields."""
    if isinstance(value, str):
        m = _GO_DURATION.match(value.strip())
        if m and any(m.groups()):
            hours, minutes, seconds, millis = (float(g) if g else 0.0 for g in m.groups())
            return timedelta(hours=hours, minutes=minutes, seconds=seconds, milliseconds=millis)
    return value


class _Spec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# ============================================================================
# Component specs
# ============================================================================

class KindSpec(_Spec):
    """kind cluster spec.

    Attributes:
        name: Cluster name; the cluster tool default is used when empty.
        recycle: Reuse a reachable existing cluster instead of creating one.
        version: kind release the cluster is expected to run.
        image: Node image reference.
        retain: Keep node containers on creation failure.
        wait: How long kind waits for the control plane.
        kubecfg: Kubeconfig output path.
        google_artifact_registries: Private registry hosts to authenticate.
        container_images: Source image to destination tag for preloading.
        kind_config_file: Extra kind cluster config file.
        additional_manifests: Manifests applied after creation, in order.
    """

    name: str = ""
    recycle: bool = False
    version: str = ""
    image: str = ""
    retain: bool = False
    wait: timedelta | None = None
    kubecfg: str = ""
    google_artifact_registries: list[str] = Field(default_factory=list, alias="googleArtifactRegistries")
    container_images: dict[str, str] = Field(default_factory=dict, alias="containerImages")
    kind_config_file: str = Field(default="", alias="config")
    additional_manifests: list[str] = Field(default_factory=list, alias="additionalManifests")

    @field_validator("wait", mode="before")
    @classmethod
    def parse_wait(cls, value: Any) -> Any:
        return parse_duration(value)


class MetalLBSpec(_Spec):
    """MetalLB ingress spec."""

    version: str = ""
    ip_count: int = Field(default=0, ge=0)
    manifests: str = ""


class MeshnetSpec(_Spec):
    """Meshnet CNI spec."""

    image: str = ""
    manifests: str = ""


class IxiaTGImage(_Spec):
    name: str
    path: str
    tag: str


class IxiaTGConfigMap(_Spec):
    """Release versions rendered into the IxiaTG release config map."""

    release: str
    images: list[IxiaTGImage] | None = None


class IxiaTGSpec(_Spec):
    """IxiaTG controller spec.

    Attributes:
        manifests: Directory holding the operator manifest and, when no
            ``config_map`` is given, the static config-map manifest.
        config_map: Structured release config, or None to use the static file.
    """

    manifests: str = ""
    config_map: IxiaTGConfigMap | None = Field(default=None, alias="configMap")


# ============================================================================
# Deployment file
# ============================================================================

class ClusterEntry(_Spec):
    kind: Literal["Kind"]
    spec: KindSpec = Field(default_factory=KindSpec)


class IngressEntry(_Spec):
    kind: Literal["MetalLB"]
    spec: MetalLBSpec = Field(default_factory=MetalLBSpec)


class CNIEntry(_Spec):
    kind: Literal["Meshnet"]
    spec: MeshnetSpec = Field(default_factory=MeshnetSpec)


class ControllerEntry(_Spec):
    kind: Literal["IxiaTG"]
    spec: IxiaTGSpec = Field(default_factory=IxiaTGSpec)


class DeploymentConfig(_Spec):
    """Parsed deployment file: one cluster, ingress and CNI plus controllers."""

    cluster: ClusterEntry
    ingress: IngressEntry
    cni: CNIEntry
    controllers: list[ControllerEntry] = Field(default_factory=list)

    def resolve_paths(self, base_dir: Path) -> DeploymentConfig:
        """Return a copy with relative manifest and config paths made absolute."""

        def _abs(p: str) -> str:
            if not p or os.path.isabs(p):
                return p
            return str((base_dir / p).resolve())

        kind = self.cluster.spec
        cluster = self.cluster.model_copy(update={"spec": kind.model_copy(update={
            "kind_config_file": _abs(kind.kind_config_file),
            "additional_manifests": [_abs(p) for p in kind.additional_manifests],
        })})
        ingress = self.ingress.model_copy(update={"spec": self.ingress.spec.model_copy(
            update={"manifests": _abs(self.ingress.spec.manifests)})})
        cni = self.cni.model_copy(update={"spec": self.cni.spec.model_copy(
            update={"manifests": _abs(self.cni.spec.manifests)})})
        controllers = [
            c.model_copy(update={"spec": c.spec.model_copy(update={"manifests": _abs(c.spec.manifests)})})
            for c in self.controllers
        ]
        return self.model_copy(update={
            "cluster": cluster, "ingress": ingress, "cni": cni, "controllers": controllers,
        })


def load_deployment_config(path: str | Path) -> DeploymentConfig:
    """Load and validate a deployment file.

    Args:
        path: Path to the deployment YAML.

    Returns:
        The validated config with paths resolved against the file's directory.

    Raises:
        ConfigNotFoundError: If the file does not exist.
        DeployError: If the file is not valid YAML or fails validation.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigNotFoundError(f"deployment file not found: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        cfg = DeploymentConfig.model_validate(data)
    except (yaml.YAMLError, ValidationError) as err:
        raise DeployError(f"invalid deployment file {path}: {err}") from err
    return cfg.resolve_paths(path.resolve().parent)


# ============================================================================
# Runtime settings
# ============================================================================

def _default_kubeconfig() -> str:
    return os.environ.get("KUBECONFIG") or os.path.expanduser(DEFAULT_KUBECONFIG)


class DeploySettings(BaseSettings):
    """Runtime settings, auto-loaded from TOPO_DEPLOY_* env vars.

    Attributes:
        health_timeout: Seconds allowed for each readiness wait.
        kubeconfig: Kubeconfig used to build the cluster-API handle.
        log_level: Root logging level for the CLI.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    health_timeout: float = Field(default=HEALTH_TIMEOUT_SECONDS, gt=0)
    kubeconfig: str = Field(default_factory=_default_kubeconfig)
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
