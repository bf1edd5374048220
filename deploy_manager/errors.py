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

"""Error kinds raised while deploying or probing a deployment."""

from __future__ import annotations

from collections.abc import Iterable, Sequence


class DeployError(Exception):
    """Base class for all deployment failures.

    The orchestrator records the stage (component and operation) that
    produced the error so the rendered message names where it happened.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.stage: str | None = None

    def with_stage(self, component: str, operation: str) -> DeployError:
        if self.stage is None:
            self.stage = f"{component} {operation}"
        return self

    def prefixed(self, context: str) -> DeployError:
        """Prepend *context* to the message and return the same error."""
        self.message = f"{context}: {self.message}"
        return self

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class MissingDependencyError(DeployError):
    """One or more required binaries are not on PATH."""

    def __init__(self, binaries: Iterable[str]) -> None:
        self.binaries = list(binaries)
        super().__init__("; ".join(f"install dependency {b!r} to deploy" for b in self.binaries))


class CommandError(DeployError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, cmd: str, args: Sequence[str], cause: BaseException | str) -> None:
        self.cmd = cmd
        self.argv = list(args)
        self.cause = cause
        rendered = " ".join([cmd, *self.argv])
        super().__init__(f"command '{rendered}' failed: {_first_line(cause)}")


class ApiError(DeployError):
    """The cluster or container-runtime API rejected a call."""


class HealthCancelledError(DeployError):
    """The context was cancelled before the component became healthy."""


class HealthTimeoutError(HealthCancelledError):
    """The per-stage deadline expired before the component became healthy."""


class StreamClosedError(DeployError):
    """A watch stream ended before a healthy status was observed."""


class TypeMismatchError(DeployError):
    """A watch delivered an object of an unexpected kind."""


class NetworkDiscoveryError(DeployError):
    """No usable container network or IPv4 subnet was found."""


class ConfigNotFoundError(DeployError):
    """An expected static configuration artifact is missing."""


def _first_line(cause: BaseException | str) -> str:
    text = str(cause).strip()
    return text.splitlines()[0] if text else type(cause).__name__
