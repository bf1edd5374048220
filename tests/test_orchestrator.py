import json

import pytest

from deploy_manager.config import load_deployment_config
from deploy_manager.context import Context
from deploy_manager.errors import (
    CommandError,
    HealthTimeoutError,
    MissingDependencyError,
)
from deploy_manager.cluster import KindCluster
from deploy_manager.cni import Meshnet
from deploy_manager.controllers import IxiaTG
from deploy_manager.ingress import MetalLB
from deploy_manager.orchestrator import Deployment, new_deployment
from tests.test_config import DEPLOYMENT, write

KUBE = object()


class FakeCluster:
    def __init__(self, log, fail=None):
        self.log = log
        self.fail = fail

    def deploy(self, ctx):
        self.log.append("cluster.deploy")
        if self.fail:
            raise self.fail

    def delete(self):
        self.log.append("cluster.delete")

    def healthy(self, ctx):
        self.log.append("cluster.healthy")

    def get_name(self):
        return "kind"


class FakeAddon:
    def __init__(self, name, log, hang=False):
        self.name = name
        self.log = log
        self.hang = hang
        self.kube = None
        self.contexts = []

    def deploy(self, ctx):
        self.log.append(f"{self.name}.deploy")

    def set_kube_client(self, kube):
        self.log.append(f"{self.name}.set_kube_client")
        self.kube = kube

    def healthy(self, ctx):
        self.log.append(f"{self.name}.healthy")
        self.contexts.append(ctx)
        if self.hang:
            while not ctx.done():
                pass
            raise ctx.error(self.name)


def deployment(log, *, hang=(), cluster_fail=None, look_path=lambda b: f"/bin/{b}", timeout=60):
    addons = {n: FakeAddon(n, log, hang=n in hang) for n in ("ingress", "cni", "c0", "c1")}
    d = Deployment(
        FakeCluster(log, cluster_fail),
        addons["ingress"],
        addons["cni"],
        [addons["c0"], addons["c1"]],
        health_timeout=timeout,
        look_path=look_path,
        client_factory=lambda path: log.append(f"connect {path}") or KUBE,
    )
    return d, addons


def test_deploy_runs_stages_in_order():
    log = []
    d, addons = deployment(log)
    d.deploy("/tmp/kc")
    assert log == [
        "cluster.deploy",
        "connect /tmp/kc",
        "ingress.set_kube_client", "ingress.deploy", "ingress.healthy",
        "cni.deploy", "cni.set_kube_client", "cni.healthy",
        "c0.deploy", "c0.set_kube_client", "c0.healthy",
        "c1.deploy", "c1.set_kube_client", "c1.healthy",
    ]
    assert all(a.kube is KUBE for a in addons.values())


def test_each_wait_gets_a_fresh_deadline():
    log = []
    d, addons = deployment(log, timeout=30)
    parent = Context()
    d.deploy("/tmp/kc", parent)
    for addon in addons.values():
        (ctx,) = addon.contexts
        assert ctx is not parent
        assert 0 < ctx.remaining() <= 30


def test_ingress_timeout_stops_deploy():
    log = []
    d, _ = deployment(log, hang=("ingress",), timeout=0.05)
    with pytest.raises(HealthTimeoutError) as exc:
        d.deploy("/tmp/kc")
    assert "cni.deploy" not in log
    assert "cluster.delete" not in log
    assert str(exc.value).startswith("ingress healthy: ")


def test_cluster_failure_aborts_before_connect():
    log = []
    d, _ = deployment(log, cluster_fail=CommandError("kind", ["create", "cluster"], "exit code 1"))
    with pytest.raises(CommandError) as exc:
        d.deploy("/tmp/kc")
    assert log == ["cluster.deploy"]
    assert exc.value.stage == "cluster deploy"


def test_missing_dependencies_reported_together():
    log = []
    d, _ = deployment(log, look_path=lambda b: None)
    with pytest.raises(MissingDependencyError) as exc:
        d.deploy("/tmp/kc")
    assert exc.value.binaries == ["docker", "kubectl"]
    assert log == []


def test_delete_only_touches_cluster():
    log = []
    d, _ = deployment(log)
    d.delete()
    assert log == ["cluster.delete"]


def test_healthy_probes_every_stage_without_deploying():
    log = []
    d, _ = deployment(log)
    d.healthy()
    assert log == ["cluster.healthy", "ingress.healthy", "cni.healthy", "c0.healthy", "c1.healthy"]


def test_connect_injects_handle_everywhere():
    log = []
    d, addons = deployment(log)
    assert d.connect("/tmp/kc") is KUBE
    assert all(a.kube is KUBE for a in addons.values())


def test_new_deployment_from_config(tmp_path):
    cfg = load_deployment_config(write(tmp_path, DEPLOYMENT))
    d = new_deployment(cfg, health_timeout=5)
    assert isinstance(d.cluster, KindCluster)
    assert isinstance(d.ingress, MetalLB)
    assert isinstance(d.cni, Meshnet)
    assert [type(c) for c in d.controllers] == [IxiaTG]
    assert d.cluster.execer is d.ingress.execer is d.cni.execer
    assert d.health_timeout == 5
    assert json.loads(str(d))["cluster"]["spec"]["name"] == "kne"
