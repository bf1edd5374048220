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

"""Blocking readiness watches over deployments and daemon sets."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

from kubernetes.client import V1DaemonSet, V1Deployment
from kubernetes.client.exceptions import ApiException

from deploy_manager import logger
from deploy_manager.context import Context
from deploy_manager.errors import ApiError, StreamClosedError, TypeMismatchError
from deploy_manager.kube import TRANSPORT_ERRORS, KubeClient


def deployment_ready(d: V1Deployment) -> bool:
    """Whether every replica counter equals the desired count (default 1)."""
    desired = 1
    if d.spec is not None and d.spec.replicas is not None:
        desired = d.spec.replicas
    status = d.status
    if status is None:
        return False
    return (
        (status.available_replicas or 0) == desired
        and (status.ready_replicas or 0) == desired
        and (status.unavailable_replicas or 0) == 0
        and (status.replicas or 0) == desired
        and (status.updated_replicas or 0) == desired
    )


def daemonset_ready(ds: V1DaemonSet) -> bool:
    """Whether every scheduled pod is ready and none is unavailable."""
    status = ds.status
    if status is None:
        return False
    return (
        (status.number_ready or 0) == (status.desired_number_scheduled or 0)
        and (status.number_unavailable or 0) == 0
    )


def wait_until(
    ctx: Context,
    kube: KubeClient,
    list_func: Callable[..., Any],
    kind: type,
    ready: Callable[[Any], bool],
    what: str,
    **list_kwargs: Any,
) -> None:
    """Consume a watch on ``list_func`` until ``ready`` holds for an object.

    The server-side watch timeout is bounded by the context's remaining time
    so the stream ends no later than the deadline.

    Args:
        ctx: Context bounding the wait.
        kube: Cluster-API handle providing the watch factory.
        list_func: List call of the watched resource.
        kind: Expected model class of every delivered object.
        ready: Readiness predicate.
        what: Human readable target used in messages.
        **list_kwargs: Passed to ``list_func`` (namespace, field selector).

    Raises:
        HealthCancelledError: Context cancelled first.
        HealthTimeoutError: Deadline expired first.
        StreamClosedError: The stream ended without a ready object.
        TypeMismatchError: An object of another kind was delivered.
        ApiError: The watch request was rejected or the API server was unreachable.
    """
    remaining = ctx.remaining()
    if remaining is not None:
        list_kwargs["timeout_seconds"] = max(1, math.ceil(remaining))
    if ctx.done():
        raise ctx.error(what)

    w = kube.watch_factory()
    try:
        for event in w.stream(list_func, **list_kwargs):
            if ctx.done():
                raise ctx.error(what)
            obj = event.get("object") if isinstance(event, dict) else None
            if not isinstance(obj, kind):
                raise TypeMismatchError(f"invalid object type: {type(obj).__name__}")
            if ready(obj):
                return
    except ApiException as err:
        raise ApiError(f"watch on {what} failed: {err.reason or err.status}") from err
    except TRANSPORT_ERRORS as err:
        raise ApiError(f"watch on {what} failed: {err}") from err
    finally:
        w.stop()

    if ctx.done():
        raise ctx.error(what)
    raise StreamClosedError(f"watch channel closed before {what} was healthy")


def deployment_healthy(ctx: Context, kube: KubeClient, namespace: str) -> None:
    """Wait until any deployment in *namespace* reports all replicas ready.

    Every update to every deployment in the namespace is evaluated; there is
    no name filter.
    """
    logger.info("Waiting on deployment %r to be healthy", namespace)
    wait_until(
        ctx, kube, kube.apps.list_namespaced_deployment, V1Deployment, deployment_ready,
        f"deployment {namespace!r}", namespace=namespace,
    )
    logger.info("Deployment %r healthy", namespace)


def daemonset_healthy(ctx: Context, kube: KubeClient, namespace: str, name: str) -> None:
    """Wait until the daemon set *name* in *namespace* is fully ready."""
    logger.info("Waiting on daemon set %s/%s to be healthy", namespace, name)
    wait_until(
        ctx, kube, kube.apps.list_namespaced_daemon_set, V1DaemonSet, daemonset_ready,
        f"daemon set {name!r}", namespace=namespace, field_selector=f"metadata.name={name}",
    )
    logger.info("Daemon set %s/%s healthy", namespace, name)
