"""Terminal executor protocol for shell command execution."""

from __future__ import annotations

import asyncio
from typing import Protocol

from opencowork.terminal.result import ShellResult


class TerminalExecutor(Protocol):
    """Protocol for running a command line in a working directory."""

    async def run(
        self,
        command: str,
        cwd: str,
        *,
        timeout: float | None = 120.0,
        output_limit: int = 50000,
        cancel: asyncio.Event | None = None,
    ) -> ShellResult:
        """Run a command line through the shell.

        Args:
            command: Full command line (pipes and chaining allowed).
            cwd: Working directory.
            timeout: Timeout in seconds. None means no timeout.
            output_limit: Maximum characters of output to keep.
            cancel: When set while running, the process is killed. The
                agent never passes one: a command already running when a
                run is aborted completes and reports its output.

        Returns:
            ShellResult with exit code, output, and status.
        """
        ...
