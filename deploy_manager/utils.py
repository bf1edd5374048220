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

"""Command execution, output capture, and dependency checks."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import sh

from deploy_manager import logger
from deploy_manager.errors import CommandError, MissingDependencyError

REDACTED = "********"


def _log_output(line: str) -> None:
    """Default sink: forward a line of command output to the package logger."""
    logger.info(line.rstrip("\n"))


class Execer:
    """Runs host commands synchronously through ``sh``.

    Stdout of every command is sent to the current output sink. The sink is
    the package logger unless :meth:`capture` temporarily swaps it for an
    in-memory buffer.

    Args:
        command_factory: Callable returning an invokable command for a binary
            name. Defaults to ``sh.Command``.
        out: Default stdout sink, a line callback or a file-like object.
    """

    def __init__(
        self,
        command_factory: Callable[[str], Any] | None = None,
        out: Callable[[str], None] | io.TextIOBase | None = None,
    ) -> None:
        self._command_factory = command_factory or sh.Command
        self._default_out = out or _log_output
        self._out = self._default_out

    def run(self, cmd: str, *args: str, redact: Sequence[str] = ()) -> None:
        """Run ``cmd`` with ``args`` and block until it exits.

        Args:
            cmd: Binary name, resolved on PATH.
            *args: Literal argument vector.
            redact: Values masked in logs and error messages.

        Raises:
            CommandError: If the binary is missing or exits non-zero.
        """
        shown = [REDACTED if a in redact else a for a in args]
        logger.debug("Running: %s %s", cmd, " ".join(shown))
        try:
            self._command_factory(cmd)(*args, _out=self._out, _err=_log_output)
        except sh.CommandNotFound as err:
            raise CommandError(cmd, shown, f"command not found: {cmd}") from err
        except sh.ErrorReturnCode as err:
            error = CommandError(cmd, shown, f"exit code {err.exit_code}")
            if redact:
                # sh keeps the full argv in its message; drop it from the chain.
                raise error from None
            raise error from err

    @contextmanager
    def capture(self) -> Iterator[io.StringIO]:
        """Capture stdout of the commands run inside the block.

        The default sink is restored on every exit path.
        """
        buf = io.StringIO()
        self._out = buf
        try:
            yield buf
        finally:
            self._out = self._default_out


def look_path(cmd: str) -> str | None:
    """Resolve *cmd* on PATH.

    Args:
        cmd: Name of the CLI command to resolve.

    Returns:
        The resolved path, or None if the command is not found.
    """
    try:
        path = sh.which(cmd)
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        return None
    return str(path).strip() if path else None


def check_dependencies(
    binaries: Iterable[str],
    resolve: Callable[[str], str | None] = look_path,
) -> None:
    """Check that every binary resolves, reporting all missing ones at once.

    Args:
        binaries: CLI command names to check.
        resolve: Resolver returning a path or None.

    Raises:
        MissingDependencyError: Naming every binary that did not resolve.
    """
    missing = [b for b in binaries if not resolve(b)]
    if missing:
        raise MissingDependencyError(missing)
