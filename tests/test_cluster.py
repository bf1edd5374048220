import json
import os
from datetime import timedelta
from pathlib import Path

import pytest

from deploy_manager.cluster import KindCluster, render_docker_config
from deploy_manager.config import KindSpec
from deploy_manager.errors import CommandError, MissingDependencyError
from deploy_manager.utils import Execer
from tests.conftest import FakeCommands


def found(cmd):
    return f"/usr/bin/{cmd}"


def kind(spec, commands, look_path=found):
    return KindCluster(spec, execer=Execer(command_factory=commands), look_path=look_path)


def test_get_name_defaults():
    assert KindCluster(KindSpec()).get_name() == "kind"
    assert KindCluster(KindSpec(name="kne")).get_name() == "kne"


def test_create_args_full():
    spec = KindSpec(
        name="kne", image="kindest/node:v1.26.0", retain=True, wait=timedelta(minutes=1),
        kubecfg="/tmp/kc", kind_config_file="/tmp/kind.yaml",
    )
    assert KindCluster(spec).create_args() == [
        "create", "cluster", "--name", "kne", "--image", "kindest/node:v1.26.0", "--retain",
        "--wait", "60s", "--kubeconfig", "/tmp/kc", "--config", "/tmp/kind.yaml",
    ]


@pytest.mark.parametrize("wait,want", [
    (timedelta(milliseconds=500), "1s"),
    (timedelta(seconds=90, milliseconds=1), "91s"),
])
def test_create_args_rounds_wait_up(wait, want):
    args = KindCluster(KindSpec(wait=wait)).create_args()
    assert args[args.index("--wait") + 1] == want


def test_create_args_minimal():
    assert KindCluster(KindSpec()).create_args() == ["create", "cluster"]


def test_deploy_creates_and_applies_manifests(commands):
    spec = KindSpec(name="kne", additional_manifests=["a.yaml", "b.yaml"])
    kind(spec, commands).deploy()
    assert commands.calls == [
        ("kind", "create", "cluster", "--name", "kne"),
        ("kubectl", "apply", "-f", "a.yaml"),
        ("kubectl", "apply", "-f", "b.yaml"),
    ]


def test_deploy_recycles_reachable_cluster(commands):
    kind(KindSpec(name="kne", recycle=True), commands).deploy()
    assert commands.calls == [("kubectl", "cluster-info", "--context", "kind-kne")]


def test_deploy_recycle_falls_back_to_create(commands):
    commands.failures.add(("kubectl", "cluster-info"))
    kind(KindSpec(name="kne", recycle=True), commands).deploy()
    assert commands.calls[-1] == ("kind", "create", "cluster", "--name", "kne")


def test_deploy_create_failure(commands):
    commands.failures.add(("kind", "create"))
    with pytest.raises(CommandError, match="failed to create cluster"):
        kind(KindSpec(additional_manifests=["a.yaml"]), commands).deploy()
    assert commands.commands("kubectl") == []


def test_dependency_check_aggregates_gcloud(commands):
    spec = KindSpec(google_artifact_registries=["us-docker.pkg.dev"])
    with pytest.raises(MissingDependencyError) as exc:
        kind(spec, commands, look_path=lambda b: None).deploy()
    assert exc.value.binaries == ["kind", "gcloud"]
    assert commands.calls == []


def test_render_docker_config():
    assert json.loads(render_docker_config(["a.dev", "b.dev"])) == {"auths": {"a.dev": {}, "b.dev": {}}}


def test_registry_access_distributes_credentials(monkeypatch):
    monkeypatch.setenv("DOCKER_CONFIG", "/original")
    seen = {}
    commands = FakeCommands(outputs={
        ("gcloud", "auth", "print-access-token"): "tok123\n",
        ("kind", "get", "nodes"): "kne-control-plane kne-worker\n",
    })
    original = commands.__call__

    def spying(name):
        run = original(name)

        def wrapped(*args, **kwargs):
            if name == "docker" and args[0] == "login":
                seen["docker_config"] = os.environ["DOCKER_CONFIG"]
                config = Path(os.environ["DOCKER_CONFIG"]) / "config.json"
                seen["config"] = json.loads(config.read_text())
            return run(*args, **kwargs)
        return wrapped

    spec = KindSpec(name="kne", google_artifact_registries=["us-docker.pkg.dev", "eu-docker.pkg.dev"])
    cluster = KindCluster(spec, execer=Execer(command_factory=spying), look_path=found)
    cluster.deploy()

    assert seen["config"] == {"auths": {"us-docker.pkg.dev": {}, "eu-docker.pkg.dev": {}}}
    tmp_dir = seen["docker_config"]
    assert tmp_dir != "/original"
    assert not Path(tmp_dir).exists()
    assert os.environ["DOCKER_CONFIG"] == "/original"

    docker_calls = commands.commands("docker")
    assert docker_calls[:2] == [
        ("docker", "login", "-u", "oauth2accesstoken", "-p", "tok123", "https://us-docker.pkg.dev"),
        ("docker", "login", "-u", "oauth2accesstoken", "-p", "tok123", "https://eu-docker.pkg.dev"),
    ]
    config_path = str(Path(tmp_dir) / "config.json")
    assert docker_calls[2:] == [
        ("docker", "cp", config_path, "kne-control-plane:/var/lib/kubelet/config.json"),
        ("docker", "exec", "kne-control-plane", "systemctl", "restart", "kubelet.service"),
        ("docker", "cp", config_path, "kne-worker:/var/lib/kubelet/config.json"),
        ("docker", "exec", "kne-worker", "systemctl", "restart", "kubelet.service"),
    ]
    assert ("kind", "get", "nodes", "--name", "kne") in commands.calls


def test_registry_access_restores_env_on_failure(monkeypatch):
    monkeypatch.delenv("DOCKER_CONFIG", raising=False)
    commands = FakeCommands(failures={("gcloud",)})
    spec = KindSpec(google_artifact_registries=["us-docker.pkg.dev"])
    with pytest.raises(CommandError, match="failed to setup artifact registry access"):
        kind(spec, commands).deploy()
    assert "DOCKER_CONFIG" not in os.environ


def test_load_container_images(commands):
    spec = KindSpec(name="kne", container_images={"src/img:1": "local/img:1"})
    kind(spec, commands).deploy()
    assert commands.calls[1:] == [
        ("docker", "pull", "src/img:1"),
        ("docker", "tag", "src/img:1", "local/img:1"),
        ("kind", "load", "docker-image", "local/img:1", "--name", "kne"),
    ]


def test_load_container_images_names_failed_image(commands):
    commands.failures.add(("docker", "pull"))
    spec = KindSpec(container_images={"src/img:1": "local/img:1"})
    with pytest.raises(CommandError, match="failed to pull 'src/img:1'"):
        kind(spec, commands).deploy()


def test_delete(commands):
    kind(KindSpec(name="kne"), commands).delete()
    kind(KindSpec(), commands).delete()
    assert commands.calls == [("kind", "delete", "cluster", "--name", "kne"), ("kind", "delete", "cluster")]


def test_healthy_single_probe(commands):
    cluster = kind(KindSpec(), commands)
    cluster.healthy()
    assert commands.calls == [("kubectl", "cluster-info", "--context", "kind-kind")]
    commands.failures.add(("kubectl",))
    with pytest.raises(CommandError, match="cluster not healthy"):
        cluster.healthy()
