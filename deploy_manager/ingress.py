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

"""MetalLB ingress: secret, address pool config, and readiness."""

from __future__ import annotations

import base64
import ipaddress
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import docker
import yaml
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from deploy_manager import logger
from deploy_manager.config import MetalLBSpec
from deploy_manager.constants import (
    ADDRESS_POOL_OFFSET,
    KIND_DOCKER_NETWORK,
    METALLB_CONFIGMAP_KEY,
    METALLB_CONFIGMAP_NAME,
    METALLB_MANIFEST,
    METALLB_NAMESPACE_MANIFEST,
    METALLB_POOL_NAME,
    METALLB_POOL_PROTOCOL,
    METALLB_SECRET_BYTES,
    METALLB_SECRET_KEY,
    METALLB_SECRET_NAME,
    NS_METALLB,
)
from deploy_manager.context import Context
from deploy_manager.errors import ApiError, NetworkDiscoveryError
from deploy_manager.health import deployment_healthy
from deploy_manager.kube import TRANSPORT_ERRORS, KubeClient
from deploy_manager.utils import Execer

# ============================================================================
# Address pool computation
# ============================================================================


def increment(ip: ipaddress.IPv4Address, count: int) -> ipaddress.IPv4Address:
    """Advance *ip* by *count* with byte-wise big-endian carry, wrapping at 2**32.

    Args:
        ip: Starting address.
        count: Non-negative increment.

    Returns:
        The advanced address.
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    octets = bytearray(ip.packed)
    carry = count
    for j in range(len(octets) - 1, -1, -1):
        if not carry:
            break
        total = octets[j] + carry
        octets[j] = total & 0xFF
        carry = total >> 8
    return ipaddress.IPv4Address(bytes(octets))


def make_config(network: ipaddress.IPv4Network, count: int) -> dict[str, Any]:
    """Build a single layer2 address pool starting 50 addresses into *network*.

    Args:
        network: Container network subnet.
        count: Pool size; the end address is ``start + count``.

    Returns:
        MetalLB config document with one ``address-pools`` entry.
    """
    start = increment(network.network_address, ADDRESS_POOL_OFFSET)
    end = increment(start, count)
    return {
        "address-pools": [{
            "name": METALLB_POOL_NAME,
            "protocol": METALLB_POOL_PROTOCOL,
            "addresses": [f"{start} - {end}"],
        }],
    }


def find_ipv4_subnet(networks: list[Any], name: str = KIND_DOCKER_NETWORK) -> ipaddress.IPv4Network:
    """Return the first IPv4 subnet of the docker network called *name*.

    Raises:
        NetworkDiscoveryError: If the network or an IPv4 subnet is missing.
    """
    for network in networks:
        if network.name != name:
            continue
        ipam = network.attrs.get("IPAM") or {}
        for entry in ipam.get("Config") or []:
            subnet = entry.get("Subnet")
            if not subnet:
                continue
            try:
                parsed = ipaddress.ip_network(subnet, strict=False)
            except ValueError as err:
                raise NetworkDiscoveryError(f"invalid subnet {subnet!r} on {name!r}: {err}") from err
            if isinstance(parsed, ipaddress.IPv4Network):
                return parsed
        break
    raise NetworkDiscoveryError(f"failed to find {name} ipv4 docker net")


# ============================================================================
# MetalLB component
# ============================================================================


def _not_found(err: ApiException) -> bool:
    return err.status == 404


class MetalLB:
    """Ingress provider deploying MetalLB from a manifest directory.

    Args:
        spec: MetalLB spec.
        execer: Host command runner.
        docker_factory: Builds the container-runtime client on first deploy.
    """

    def __init__(
        self,
        spec: MetalLBSpec,
        execer: Execer | None = None,
        docker_factory: Callable[[], Any] = docker.from_env,
    ) -> None:
        self.spec = spec
        self.execer = execer or Execer()
        self._docker_factory = docker_factory
        self.docker_client: Any = None
        self.kube: KubeClient | None = None

    def set_kube_client(self, kube: KubeClient) -> None:
        self.kube = kube

    def _manifest(self, name: str) -> str:
        return str(Path(self.spec.manifests) / name)

    def deploy(self, ctx: Context | None = None) -> None:
        """Apply MetalLB and create its secret and address pool if missing.

        Raises:
            CommandError: If a manifest fails to apply.
            ApiError: If the cluster or docker API rejects a call.
            NetworkDiscoveryError: If no IPv4 kind network is found.
        """
        if self.docker_client is None:
            try:
                self.docker_client = self._docker_factory()
            except docker.errors.DockerException as err:
                raise ApiError(f"failed to connect to docker: {err}") from err

        logger.info("Creating metallb namespace")
        self.execer.run("kubectl", "apply", "-f", self._manifest(METALLB_NAMESPACE_MANIFEST))
        self._ensure_secret()
        logger.info("Applying metallb pods")
        self.execer.run("kubectl", "apply", "-f", self._manifest(METALLB_MANIFEST))
        self._ensure_config()

    def _ensure_secret(self) -> None:
        try:
            self.kube.core.read_namespaced_secret(METALLB_SECRET_NAME, NS_METALLB)
            return
        except ApiException as err:
            if not _not_found(err):
                raise ApiError(f"failed to get secret {METALLB_SECRET_NAME!r}: {err.reason}") from err
        except TRANSPORT_ERRORS as err:
            raise ApiError(f"failed to get secret {METALLB_SECRET_NAME!r}: {err}") from err

        logger.info("Creating metallb secret")
        key = base64.b64encode(os.urandom(METALLB_SECRET_BYTES)).decode()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=METALLB_SECRET_NAME),
            string_data={METALLB_SECRET_KEY: key},
        )
        try:
            self.kube.core.create_namespaced_secret(NS_METALLB, body)
        except ApiException as err:
            raise ApiError(f"failed to create secret {METALLB_SECRET_NAME!r}: {err.reason}") from err
        except TRANSPORT_ERRORS as err:
            raise ApiError(f"failed to create secret {METALLB_SECRET_NAME!r}: {err}") from err

    def _ensure_config(self) -> None:
        try:
            self.kube.core.read_namespaced_config_map(METALLB_CONFIGMAP_NAME, NS_METALLB)
            return
        except ApiException as err:
            if not _not_found(err):
                raise ApiError(f"failed to get config map {METALLB_CONFIGMAP_NAME!r}: {err.reason}") from err
        except TRANSPORT_ERRORS as err:
            raise ApiError(f"failed to get config map {METALLB_CONFIGMAP_NAME!r}: {err}") from err

        logger.info("Applying metallb ingress config")
        try:
            networks = self.docker_client.networks.list()
        except docker.errors.DockerException as err:
            raise ApiError(f"failed to list docker networks: {err}") from err
        subnet = find_ipv4_subnet(networks)
        pool = make_config(subnet, self.spec.ip_count)
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=METALLB_CONFIGMAP_NAME),
            data={METALLB_CONFIGMAP_KEY: yaml.safe_dump(pool, sort_keys=False)},
        )
        try:
            self.kube.core.create_namespaced_config_map(NS_METALLB, body)
        except ApiException as err:
            raise ApiError(f"failed to create config map {METALLB_CONFIGMAP_NAME!r}: {err.reason}") from err
        except TRANSPORT_ERRORS as err:
            raise ApiError(f"failed to create config map {METALLB_CONFIGMAP_NAME!r}: {err}") from err
        logger.info("Published address pool %s", pool["address-pools"][0]["addresses"][0])

    def healthy(self, ctx: Context) -> None:
        deployment_healthy(ctx, self.kube, NS_METALLB)
