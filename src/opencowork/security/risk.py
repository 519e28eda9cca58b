"""Command and write risk classification.

These are advisory inputs to the approval policy; none of them grants
anything on its own.
"""

from __future__ import annotations

import os
import re

# Read-only or everyday CLI tools. Interpreters, package managers and git
# are not listed: git is only safe for read-only subcommands and an
# interpreter only when it runs a script file.
SAFE_COMMANDS = frozenset(
    {
        "ls", "cat", "head", "tail", "grep", "find", "echo", "pwd", "cd",
        "tree", "wc", "sort", "uniq", "diff", "patch", "tar", "unzip", "zip",
        "gzip", "gunzip", "bunzip2", "curl", "wget", "ping", "traceroute",
        "netstat", "ps", "top", "htop",
    }
)

INTERPRETERS = frozenset({"python", "python3", "node"})
SCRIPT_EXTENSIONS = (".py", ".js", ".ts")

DANGEROUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\brm\b[^;&|]*\s(-[a-z]*r[a-z]*|--recursive)(?=\s|$)",
        r"\bfind\b[^;&|]*\s-(delete\b|exec(dir)?\s+(\S*/)?rm\b)",
        r"\bdel\s+/s\s+/q",
        r"\brd\s+/s\s+/q",
        r"(^|[;&|]\s*)format\s+",
        r"\bmkfs",
        r"\bdd\s+if=",
        r"\bshred\b",
        r">\s*/?dev/(null|sda|sdb)",
        r"2>\s*&1\s*>\s*/dev/null",
        r"\bchmod\s+777",
        r"\bchmod\s+-R\s+777",
        r"\bchown\s+-R",
    )
)

_READONLY_GIT = re.compile(r"^git\s+(log|show|diff|status|branch|remote|ls-files)\b", re.IGNORECASE)
_CHAIN_SPLIT = re.compile(r"&&|\|\||[;|]")


def is_dangerous_command(command: str) -> bool:
    """True if any dangerous pattern occurs anywhere in the command."""
    trimmed = command.strip()
    return any(pattern.search(trimmed) for pattern in DANGEROUS_PATTERNS)


def _has_redirect_or_substitution(command: str) -> bool:
    """True for an unquoted `>` redirect, or `$(...)` or a backtick outside single quotes."""
    quote = None
    for i, char in enumerate(command):
        if quote == "'":
            if char == "'":
                quote = None
            continue
        if char == "`" or (char == "$" and command[i + 1 : i + 2] == "("):
            return True
        if quote == '"':
            if char == '"':
                quote = None
        elif char in "'\"":
            quote = char
        elif char == ">":
            return True
    return False


def _is_safe_segment(segment: str) -> bool:
    tokens = segment.split()
    if not tokens:
        return True
    base = os.path.basename(tokens[0]).lower()
    if base in SAFE_COMMANDS:
        return True
    if _READONLY_GIT.match(segment):
        return True
    if base in INTERPRETERS and len(tokens) > 1 and segment.endswith(SCRIPT_EXTENSIONS):
        return True
    return False


def is_safe_command(command: str) -> bool:
    """Classify a shell command as safe to auto-approve.

    Safe means: no dangerous pattern anywhere, and every chained segment
    (split on `&&`, `||`, `;` and `|`) is an allow-listed tool, a
    read-only git query, or an interpreter running a script file. Output
    redirection and command substitution are never safe.
    """
    trimmed = command.strip()
    if not trimmed or is_dangerous_command(trimmed) or _has_redirect_or_substitution(trimmed):
        return False
    segments = [s.strip() for s in _CHAIN_SPLIT.split(trimmed)]
    if not any(segments):
        return False
    return all(_is_safe_segment(s) for s in segments)


def is_dangerous_write(path: str) -> bool:
    """True if writing to `path` would overwrite an existing entry."""
    try:
        return os.path.lexists(path)
    except (OSError, ValueError):
        return False
