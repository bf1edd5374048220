from __future__ import annotations

from types import SimpleNamespace

import pytest
import sh

from deploy_manager.kube import KubeClient
from deploy_manager.utils import Execer


class FakeCommands:
    """Command factory for Execer that records argv and replays canned output.

    ``outputs`` maps an argv prefix tuple to the stdout the command writes;
    ``failures`` is a set of argv prefixes that exit non-zero.
    """

    def __init__(self, outputs=None, failures=()):
        self.calls: list[tuple[str, ...]] = []
        self.outputs = dict(outputs or {})
        self.failures = set(failures)

    def _match(self, argv, table):
        for prefix in table:
            if argv[: len(prefix)] == prefix:
                return prefix
        return None

    def __call__(self, name):
        def run(*args, _out=None, _err=None):
            argv = (name, *args)
            self.calls.append(argv)
            if self._match(argv, self.failures) is not None:
                raise sh.ErrorReturnCode_1(" ".join(argv), b"", b"boom")
            prefix = self._match(argv, self.outputs)
            if prefix is not None:
                text = self.outputs[prefix]
                if hasattr(_out, "write"):
                    _out.write(text)
                else:
                    for line in text.splitlines(keepends=True):
                        _out(line)
        return run

    def commands(self, name=None):
        return [c for c in self.calls if name is None or c[0] == name]


class FakeWatch:
    """Stand-in for kubernetes.watch.Watch yielding canned events."""

    def __init__(self, objects):
        self.objects = objects
        self.stream_calls = []
        self.delivered = 0
        self.stopped = False

    def stream(self, func, **kwargs):
        self.stream_calls.append((func, kwargs))
        for obj in self.objects:
            self.delivered += 1
            yield {"type": "MODIFIED", "object": obj}

    def stop(self):
        self.stopped = True


def make_kube(objects=(), core=None, apps=None):
    watcher = FakeWatch(objects)
    apps = apps or SimpleNamespace(
        list_namespaced_deployment=lambda **kw: None,
        list_namespaced_daemon_set=lambda **kw: None,
    )
    return KubeClient(core=core, apps=apps, watch_factory=lambda: watcher), watcher


@pytest.fixture
def commands():
    return FakeCommands()


@pytest.fixture
def execer(commands):
    return Execer(command_factory=commands)
