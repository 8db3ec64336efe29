"""
Shell runner: executes preset or allow-listed commands for the run_command skill.

Commands are never passed to a shell: free-form input is shlex-split, checked
against an allowlist, and launched with create_subprocess_exec. Each run has
its own timeout and an output cap; secrets are stripped from the environment.
"""

import asyncio
import logging
import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import NotFoundError, ToolExecutionError, ValidationError

logger = logging.getLogger(__name__)

PRESETS: dict[str, list[str]] = {
    "date": ["date"],
    "uptime": ["uptime"],
    "whoami": ["whoami"],
    "disk_usage": ["df", "-h"],
    "list_files": ["ls", "-la"],
    "python_version": [sys.executable, "--version"],
}

# Read-only inspection commands only
_ALLOWED_COMMANDS = {
    "ls", "pwd", "wc", "file", "stat", "du", "df",
    "find", "tree", "basename", "dirname", "realpath",
    "grep", "sort", "uniq", "cut", "tr", "diff",
    "uname", "whoami", "hostname", "date", "uptime", "which", "echo",
    "git",
}

_BLOCKED_ARGS: dict[str, set[str]] = {
    "git": {"push", "reset", "clean", "checkout", "restore", "rebase",
            "merge", "cherry-pick", "revert", "rm", "mv", "config",
            "--force", "-f", "--hard"},
    "find": {"-exec", "-execdir", "-delete", "-ok", "-okdir", "-fprint"},
}

_SHELL_OPERATORS = ("&&", "||", ";", "|", "`", "$(", "${", ">", "<", "&")

_SECRET_ENV_WORDS = {"PASSWORD", "SECRET", "TOKEN", "CREDENTIAL", "PRIVATE_KEY", "API_KEY"}


class ShellTimeoutError(ToolExecutionError):
    pass


@dataclass
class CommandResult:
    argv: list[str]
    exit_code: int
    stdout: str
    stderr: str
    truncated: bool

    def to_dict(self) -> dict:
        return {
            "command": shlex.join(self.argv),
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "truncated": self.truncated,
        }


def check_command(command: str) -> list[str]:
    """Parse a free-form command and return its argv. Raises ValidationError if unsafe."""
    for op in _SHELL_OPERATORS:
        if op in command:
            raise ValidationError(f"Shell operator '{op}' is not allowed")
    try:
        tokens = shlex.split(command)
    except ValueError:
        raise ValidationError("Could not parse command")
    if not tokens:
        raise ValidationError("Empty command")

    base_cmd = Path(tokens[0]).name.lower()
    if base_cmd != tokens[0].lower():
        raise ValidationError("Commands must be given by name, not path")
    if base_cmd not in _ALLOWED_COMMANDS:
        raise ValidationError(f"Command '{base_cmd}' is not in the allowed command list")

    blocked = _BLOCKED_ARGS.get(base_cmd, set())
    for token in tokens[1:]:
        if token in blocked:
            raise ValidationError(f"Argument '{token}' is not allowed for '{base_cmd}'")
    return tokens


def _clean_env() -> dict[str, str]:
    """Copy of the environment without secret-looking variables."""
    return {
        k: v for k, v in os.environ.items()
        if not any(word in k.upper() for word in _SECRET_ENV_WORDS)
    }


def _truncate(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit] + f"\n[truncated, output was {len(text)} chars]", True


class ShellRunner:
    def __init__(self, cwd: Path, timeout: float = 10.0, max_output_chars: int = 8000):
        self.cwd = Path(cwd)
        self.timeout = timeout
        self.max_output_chars = max_output_chars

    def resolve(self, preset: Optional[str] = None, command: Optional[str] = None) -> list[str]:
        if preset and command:
            raise ValidationError("Give either a preset or a command, not both")
        if preset:
            argv = PRESETS.get(preset)
            if argv is None:
                raise NotFoundError(
                    f"Unknown preset '{preset}'. Available: {', '.join(sorted(PRESETS))}"
                )
            return list(argv)
        if command:
            return check_command(command)
        raise ValidationError("A preset or a command is required")

    async def run(self, preset: Optional[str] = None, command: Optional[str] = None) -> CommandResult:
        argv = self.resolve(preset, command)
        self.cwd.mkdir(parents=True, exist_ok=True)
        logger.info("Running command: %s", shlex.join(argv))

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd),
                env=_clean_env(),
            )
        except FileNotFoundError:
            raise ToolExecutionError(f"Command not found: {argv[0]}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Command timed out after %ss: %s", self.timeout, argv[0])
            raise ShellTimeoutError(f"Command timed out after {self.timeout:g}s")

        out, out_cut = _truncate(stdout.decode("utf-8", errors="replace"), self.max_output_chars)
        err, err_cut = _truncate(stderr.decode("utf-8", errors="replace"), self.max_output_chars)
        return CommandResult(
            argv=argv,
            exit_code=proc.returncode,
            stdout=out,
            stderr=err,
            truncated=out_cut or err_cut,
        )
