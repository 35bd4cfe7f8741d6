"""
External Commands

Async runner for one-shot external commands (pkgutil, cp, osqueryd queries).
Callers take a runner instance so tests can substitute a fake.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import ExternalToolError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Exit status and decoded output of a finished command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    
    @property
    def ok(self) -> bool:
        return self.returncode == 0
    
    def check(self) -> "CommandResult":
        """Raise ExternalToolError unless the command succeeded."""
        if not self.ok:
            raise ExternalToolError(self.args, self.returncode, self.stderr)
        return self


class CommandRunner:
    """Runs commands with asyncio subprocesses."""
    
    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
    
    async def run(self, args: Sequence[str]) -> CommandResult:
        """
        Run a command to completion, capturing stdout and stderr.
        
        Raises:
            ExternalToolError: If the program cannot be started or times out
        """
        args = [str(a) for a in args]
        logger.debug(f"Running: {' '.join(args)}")
        
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(args, None, str(e)) from e
        
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExternalToolError(args, None, f"timed out after {self.timeout}s")
        
        logger.debug(f"{args[0]} return code: {process.returncode}")
        return CommandResult(
            args=args,
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
