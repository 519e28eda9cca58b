"""Tests for command and write risk classification."""

from __future__ import annotations

from pathlib import Path

import pytest

from opencowork.security.risk import is_dangerous_command, is_dangerous_write, is_safe_command


class TestDangerousCommands:
    """Test the dangerous pattern list."""

    @pytest.mark.parametrize(
        "command",
        [
            "rm -rf build",
            "rm -r old",
            "del /s /q C:\\temp",
            "rd /s /q C:\\temp",
            "format C:",
            "mkfs.ext4 /dev/sdb1",
            "dd if=/dev/zero of=/dev/sda",
            "shred secrets.txt",
            "echo hi > /dev/sda",
            "chmod 777 script.sh",
            "chmod -R 777 .",
            "chown -R nobody .",
            "ls && rm -rf /",
            "RM -RF tmp",
            "rm -fr /tmp/x",
            "rm -Rf dist",
            "rm -r -f cache",
            "rm -f -r cache",
            "rm --recursive --force /tmp/x",
            "find . -delete",
            "find . -name '*.pyc' -delete",
            "find . -type f -exec rm {} +",
            "find /tmp -execdir /bin/rm -f {} +",
        ],
    )
    def test_dangerous(self, command: str) -> None:
        assert is_dangerous_command(command)
        assert not is_safe_command(command)

    @pytest.mark.parametrize(
        "command",
        ["ls -la", "rm file.txt", "rm -f old-report.txt", "rm --force a.txt", "git status", "reformat.py", "find . -name '*.rs'"],
    )
    def test_not_dangerous(self, command: str) -> None:
        assert not is_dangerous_command(command)


class TestSafeCommands:
    """Test the auto-approval allow list."""

    @pytest.mark.parametrize(
        "command",
        [
            "ls -la",
            "cat README.md | grep install",
            "pwd; echo done",
            "find . -name '*.py' | wc -l",
            "git status",
            "git log --oneline",
            "git diff HEAD~1",
            "python scripts/report.py",
            "node build.js",
            "/usr/bin/ls",
        ],
    )
    def test_safe(self, command: str) -> None:
        assert is_safe_command(command)

    @pytest.mark.parametrize(
        "command",
        [
            "",
            "   ",
            "rm file.txt",
            "ls && rm file.txt",
            "git push origin main",
            "git commit -m wip",
            "python -c 'print(1)'",
            "python",
            "npm install",
            "pip install requests",
            "cat a | sh",
            "echo pwned > ~/.bashrc",
            "cat notes.txt >> /etc/hosts",
            "ls 2>errors.log",
            "echo $(whoami)",
            "echo \"$(id)\"",
            "cat `which ls`",
        ],
    )
    def test_unsafe(self, command: str) -> None:
        assert not is_safe_command(command)

    @pytest.mark.parametrize("command", ["grep '>' notes.txt", "echo \"a > b\"", "echo '$(not run)'"])
    def test_quoted_operators_stay_safe(self, command: str) -> None:
        assert is_safe_command(command)


class TestDangerousWrite:
    """Overwriting an existing entry is the risky case."""

    def test_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "a.txt"
        target.write_text("x")

        assert is_dangerous_write(str(target))

    def test_new_file(self, tmp_path: Path) -> None:
        assert not is_dangerous_write(str(tmp_path / "new.txt"))

    def test_existing_directory(self, tmp_path: Path) -> None:
        assert is_dangerous_write(str(tmp_path))
