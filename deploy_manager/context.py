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

"""Cancellable contexts with independent per-wait deadlines."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from deploy_manager.errors import HealthCancelledError, HealthTimeoutError


class Context:
    """Cancellation scope shared by a chain of blocking waits.

    A child created with :meth:`with_timeout` gets a fresh deadline of its own
    and is done once that deadline passes or any ancestor is cancelled or
    expires. Sibling children never share a remaining-time budget.

    Attributes:
        deadline: Monotonic timestamp after which this context is expired,
            or None for no deadline of its own.
    """

    def __init__(
        self,
        parent: Context | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._parent = parent
        self._clock = clock or (parent._clock if parent else time.monotonic)
        self._cancelled = threading.Event()
        self.deadline = self._clock() + timeout if timeout is not None else None

    def with_timeout(self, seconds: float) -> Context:
        """Derive a child context that expires *seconds* from now."""
        return Context(parent=self, timeout=seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def expired(self) -> bool:
        if self.deadline is not None and self._clock() >= self.deadline:
            return True
        return self._parent is not None and self._parent.expired

    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        """Seconds until the nearest deadline in the chain, or None."""
        candidates = []
        if self.deadline is not None:
            candidates.append(max(0.0, self.deadline - self._clock()))
        if self._parent is not None:
            parent_remaining = self._parent.remaining()
            if parent_remaining is not None:
                candidates.append(parent_remaining)
        return min(candidates) if candidates else None

    def error(self, what: str) -> HealthCancelledError:
        """Build the failure to raise when this context ends a wait on *what*."""
        if self.cancelled:
            return HealthCancelledError(f"context canceled before {what} was healthy")
        return HealthTimeoutError(f"deadline exceeded before {what} was healthy")
