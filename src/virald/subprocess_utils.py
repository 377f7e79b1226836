"""Subprocess utilities.

- run_command: run an external tool to completion and capture its output
- log_task_exception: done-callback for fire-and-forget background tasks
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from virald._logging import get_logger
from virald.exceptions import ExternalToolError

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Completed external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


async def run_command(*argv: str, context_id: str | None = None) -> CommandResult:
    """Run a command and wait for it to exit.

    The command is executed directly (no shell), so arguments never need
    quoting.  There is no timeout: a hung tool blocks the caller until it
    exits, and callers that need bounded latency wrap this call in
    ``asyncio.timeout()``.

    Args:
        *argv: Program followed by its arguments
        context_id: Identifier (e.g., vm_id) for log correlation

    Returns:
        CommandResult with decoded stdout/stderr

    Raises:
        ExternalToolError: Binary could not be launched or exited non-zero
    """
    logger.debug("Running command", extra={"argv": argv, "context_id": context_id})

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        # communicate() drains both pipes concurrently (no 64KB pipe deadlock)
        stdout_bytes, stderr_bytes = await proc.communicate()
    except OSError as e:
        raise ExternalToolError(
            f"Failed to launch {argv[0]}: {e}",
            argv=argv,
            context={"context_id": context_id},
        ) from e

    stdout = stdout_bytes.decode(errors="replace")
    stderr = stderr_bytes.decode(errors="replace")
    returncode = proc.returncode if proc.returncode is not None else -1

    if returncode != 0:
        logger.warning(
            "Command failed",
            extra={"argv": argv, "returncode": returncode, "stderr": stderr.strip(), "context_id": context_id},
        )
        raise ExternalToolError(
            f"{argv[0]} exited with status {returncode}: {stderr.strip()}",
            argv=argv,
            returncode=returncode,
            stderr=stderr,
            context={"context_id": context_id},
        )

    return CommandResult(argv=tuple(argv), returncode=returncode, stdout=stdout, stderr=stderr)


def log_task_exception(task: asyncio.Task[object]) -> None:
    """Log exceptions from background tasks.

    Callback for asyncio.Task.add_done_callback() so that failures in
    fire-and-forget tasks are not lost.

    Usage:
        task = asyncio.create_task(some_coroutine())
        task.add_done_callback(log_task_exception)
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
