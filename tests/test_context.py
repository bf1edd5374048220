import pytest

from deploy_manager.context import Context
from deploy_manager.errors import HealthCancelledError, HealthTimeoutError


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_child_deadlines_do_not_stack():
    clock = Clock()
    root = Context(clock=clock)
    first = root.with_timeout(60)
    clock.now += 50
    second = root.with_timeout(60)
    assert first.remaining() == pytest.approx(10)
    assert second.remaining() == pytest.approx(60)
    clock.now += 15
    assert first.expired and not second.expired


def test_cancel_propagates_to_children():
    root = Context()
    child = root.with_timeout(60)
    root.cancel()
    assert child.done()
    assert type(child.error("x")) is HealthCancelledError


def test_expired_error_is_timeout():
    clock = Clock()
    child = Context(clock=clock).with_timeout(1)
    clock.now += 2
    assert isinstance(child.error("ingress"), HealthTimeoutError)


def test_root_without_deadline():
    ctx = Context()
    assert ctx.remaining() is None
    assert not ctx.done()
