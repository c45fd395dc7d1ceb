"""
Asynchronous execution of external commands (import extractor, git).
"""

import asyncio
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .error_handling import CommandTimeoutError, ErrorCategory, get_error_handler


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    command: List[str]
    stdout: str
    stderr: str
    return_code: int

    @property
    def ok(self) -> bool:
        return self.return_code == 0


async def run_command_safely(
    command: Sequence[str],
    timeout_seconds: float,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """
    Run a command with a timeout and capture its output.

    Args:
        command: Command and arguments to run
        timeout_seconds: Seconds to wait before killing the process
        cwd: Working directory
        env: Extra environment variables layered over ``os.environ``

    Returns:
        CommandResult with decoded stdout/stderr and the exit code

    Raises:
        ValueError: If the command is empty
        FileNotFoundError: If the executable does not exist
        CommandTimeoutError: If the command exceeds ``timeout_seconds``
    """
    if not command or not isinstance(command[0], str) or not command[0]:
        raise ValueError("Invalid command")

    safe_command = [str(arg) for arg in command]
    process_env = None
    if env:
        process_env = os.environ.copy()
        process_env.update(env)

    process = await asyncio.create_subprocess_exec(
        *safe_command,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=process_env,
    )

    try:
        stdout_data, stderr_data = await asyncio.wait_for(
            process.communicate(), timeout=timeout_seconds
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        get_error_handler().warning(
            ErrorCategory.TOOLCHAIN,
            f"Command timed out after {timeout_seconds}s",
            "command_runner",
            "run_command_safely",
            details={"command": safe_command[0]},
        )
        raise CommandTimeoutError(" ".join(safe_command), timeout_seconds)

    return CommandResult(
        command=safe_command,
        stdout=stdout_data.decode("utf-8", errors="replace") if stdout_data else "",
        stderr=stderr_data.decode("utf-8", errors="replace") if stderr_data else "",
        return_code=process.returncode or 0,
    )
