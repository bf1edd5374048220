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

"""Fixed names, paths and defaults shared across components."""

from __future__ import annotations

# -- Orchestration --
HEALTH_TIMEOUT_SECONDS = 60.0
REQUIRED_BINARIES = ("docker", "kubectl")

# -- kind cluster --
DEFAULT_CLUSTER_NAME = "kind"
KIND_CONTEXT_PREFIX = "kind-"
KIND_BINARY = "kind"
GCLOUD_BINARY = "gcloud"
DOCKER_CONFIG_ENV_VAR = "DOCKER_CONFIG"
DOCKER_CONFIG_FILE = "config.json"
DOCKER_CONFIG_TMP_PREFIX = "topo_deploy_docker"
KUBELET_CONFIG_PATH = "/var/lib/kubelet/config.json"
REGISTRY_TOKEN_USER = "oauth2accesstoken"

# -- MetalLB ingress --
NS_METALLB = "metallb-system"
METALLB_NAMESPACE_MANIFEST = "namespace.yaml"
METALLB_MANIFEST = "metallb.yaml"
METALLB_SECRET_NAME = "memberlist"
METALLB_SECRET_KEY = "secretkey"
METALLB_SECRET_BYTES = 16
METALLB_CONFIGMAP_NAME = "config"
METALLB_CONFIGMAP_KEY = "config"
METALLB_POOL_NAME = "default"
METALLB_POOL_PROTOCOL = "layer2"
ADDRESS_POOL_OFFSET = 50
KIND_DOCKER_NETWORK = "kind"

# -- Meshnet CNI --
NS_MESHNET = "meshnet"
MESHNET_DAEMONSET = "meshnet"

# -- IxiaTG controller --
NS_IXIATG = "ixiatg-op-system"
IXIATG_OPERATOR_MANIFEST = "ixiatg-operator.yaml"
IXIATG_CONFIGMAP_MANIFEST = "ixia-configmap.yaml"
IXIATG_CONFIGMAP_TMP_PREFIX = "ixiatg-configmap-"
IXIATG_CONFIGMAP_HEADER = """apiVersion: v1
kind: ConfigMap
metadata:
  name: ixiatg-release-config
  namespace: ixiatg-op-system
data:
  versions: |
    """

# -- Settings --
ENV_PREFIX = "TOPO_DEPLOY_"
DEFAULT_KUBECONFIG = "~/.kube/config"
