"""Subprocess-based terminal executor for local shell execution."""

from __future__ import annotations

import asyncio
import os
import signal
import time

from opencowork.logging import get_logger
from opencowork.terminal.result import ShellResult

log = get_logger("terminal")

_POSIX = os.name == "posix"


def _kill_tree(process: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it spawned."""
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


class SubprocessTerminalExecutor:
    """Execute command lines with asyncio's shell subprocess support."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the executor.

        Args:
            env: Extra environment variables for every command.
        """
        self._env = env or {}

    def _result(
        self,
        command: str,
        cwd: str,
        started: float,
        *,
        exit_code: int | None,
        output: str,
        status: str,
        truncated: bool = False,
    ) -> ShellResult:
        return ShellResult(
            command=command,
            cwd=cwd,
            exit_code=exit_code,
            output=output,
            truncated=truncated,
            status=status,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def run(
        self,
        command: str,
        cwd: str,
        *,
        timeout: float | None = 120.0,
        output_limit: int = 50000,
        cancel: asyncio.Event | None = None,
    ) -> ShellResult:
        started = time.perf_counter()
        process_env = os.environ.copy()
        process_env.update(self._env)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=cwd,
                env=process_env,
                start_new_session=_POSIX,
            )
        except FileNotFoundError:
            return self._result(
                command, cwd, started,
                exit_code=127, output=f"Working directory not found: {cwd}", status="error",
            )
        except PermissionError:
            return self._result(
                command, cwd, started,
                exit_code=126, output=f"Permission denied: {cwd}", status="error",
            )
        except OSError as e:
            return self._result(command, cwd, started, exit_code=1, output=f"OS error: {e}", status="error")

        communicate = asyncio.ensure_future(process.communicate())
        waiters: set[asyncio.Future] = {communicate}
        cancel_wait: asyncio.Future | None = None
        if cancel is not None:
            cancel_wait = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_wait is not None and not cancel_wait.done():
                cancel_wait.cancel()

        if communicate not in done:
            status = "cancelled" if cancel_wait is not None and cancel_wait in done else "timeout"
            log.info("Killing command (%s): %s", status, command)
            _kill_tree(process)
            stdout_data, _ = await communicate
            output = stdout_data.decode("utf-8", errors="replace")[:output_limit]
            return self._result(command, cwd, started, exit_code=None, output=output, status=status)

        stdout_data, _ = communicate.result()
        output = stdout_data.decode("utf-8", errors="replace")
        truncated = len(output) > output_limit
        if truncated:
            output = output[:output_limit] + "\n... (output truncated)"

        exit_code = process.returncode
        return self._result(
            command, cwd, started,
            exit_code=exit_code,
            output=output,
            status="ok" if exit_code == 0 else "error",
            truncated=truncated,
        )
