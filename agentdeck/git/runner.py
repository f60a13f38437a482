"""Async subprocess helpers for git and gh."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from ..error_handling import CommandFailure

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


async def run_command(
    program: str,
    *args: str,
    cwd: Optional[PathLike] = None,
    timeout: Optional[float] = None,
) -> tuple[int, str, str]:
    """
    Run a command without raising on non-zero exit.

    Args:
        program: Executable name, e.g. "git" or "gh"
        *args: Command arguments
        cwd: Working directory
        timeout: Hard limit in seconds; the process is killed on expiry

    Returns:
        Tuple of (exit_code, stdout, stderr).

    Raises:
        asyncio.TimeoutError: If timeout elapses first
        CommandFailure: If the program cannot be started
    """
    logger.debug(f"Running: {program} {' '.join(args)} (cwd={cwd})")
    try:
        proc = await asyncio.create_subprocess_exec(
            program,
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandFailure(program, 127, f"{program} not found") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning(f"{program} {' '.join(args)} timed out after {timeout}s")
        raise

    return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


async def run_git(*args: str, cwd: Optional[PathLike] = None, timeout: Optional[float] = None) -> tuple[int, str, str]:
    return await run_command("git", *args, cwd=cwd, timeout=timeout)


async def git(*args: str, cwd: Optional[PathLike] = None, label: Optional[str] = None) -> str:
    """
    Run git and return stdout, raising on failure.

    Raises:
        CommandFailure: With combined output when git exits non-zero
    """
    code, stdout, stderr = await run_git(*args, cwd=cwd)
    if code != 0:
        output = "\n".join(part.strip() for part in (stderr, stdout) if part.strip())
        raise CommandFailure(label or f"git {args[0]}", code, output)
    return stdout


async def gh(*args: str, cwd: Optional[PathLike] = None) -> str:
    """Run the GitHub CLI and return stdout, raising CommandFailure on error."""
    code, stdout, stderr = await run_command("gh", *args, cwd=cwd)
    if code != 0:
        output = "\n".join(part.strip() for part in (stderr, stdout) if part.strip())
        raise CommandFailure(f"gh {' '.join(args[:2])}", code, f"{output}: exit status {code}")
    return stdout
