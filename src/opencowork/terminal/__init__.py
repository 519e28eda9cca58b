"""Shell command execution."""

from opencowork.terminal.protocol import TerminalExecutor
from opencowork.terminal.result import ShellResult
from opencowork.terminal.subprocess_executor import SubprocessTerminalExecutor

__all__ = [
    "ShellResult",
    "SubprocessTerminalExecutor",
    "TerminalExecutor",
]
