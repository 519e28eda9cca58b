"""Shell execution result dataclass."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ShellResult:
    """Result of a shell command execution.

    Attributes:
        command: The command line that was executed.
        cwd: Working directory it ran in.
        exit_code: Process exit code, or None if killed or timed out.
        output: Combined stdout/stderr output (may be truncated).
        truncated: True if output was cut at the output limit.
        status: "ok", "error", "timeout", or "cancelled".
        duration_ms: Execution duration in milliseconds.
    """

    command: str
    cwd: str
    exit_code: int | None
    output: str
    truncated: bool
    status: str
    duration_ms: float

    @property
    def success(self) -> bool:
        """True if command completed with exit code 0."""
        return self.exit_code == 0

    def to_tool_text(self) -> str:
        """Render the result the way the model sees it."""
        body = self.output.rstrip("\n") or "(no output)"
        if self.status == "timeout":
            return f"{body}\n[command timed out after {self.duration_ms / 1000:.0f}s]"
        if self.status == "cancelled":
            return f"{body}\n[command cancelled]"
        if not self.success:
            return f"{body}\n[exit code: {self.exit_code}]"
        return body

    def __repr__(self) -> str:
        if self.success:
            lines = self.output.count("\n") + 1 if self.output else 0
            return f"<ShellResult ok, {lines} lines>"
        return f"<ShellResult {self.status}, exit={self.exit_code}>"
