"""Blocking OS commands run off the event loop with a hard timeout."""
from __future__ import annotations

import asyncio
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


def run_command_sync(argv: Sequence[str], *, cwd: Optional[Path] = None, timeout_s: float = 30.0) -> CommandResult:
    args = [str(a) for a in argv]
    try:
        proc = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        return CommandResult(argv=args, returncode=127, stdout="", stderr="", error=f"command not found: {e.filename or args[0]}")
    except subprocess.TimeoutExpired as e:
        out = e.stdout.decode("utf-8", errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return CommandResult(argv=args, returncode=-1, stdout=out, stderr="", error=f"timed out after {timeout_s}s")
    except OSError as e:
        return CommandResult(argv=args, returncode=-1, stdout="", stderr="", error=str(e))
    return CommandResult(argv=args, returncode=int(proc.returncode), stdout=proc.stdout or "", stderr=proc.stderr or "")


async def run_command(argv: Sequence[str], *, cwd: Optional[Path] = None, timeout_s: float = 30.0) -> CommandResult:
    return await asyncio.to_thread(run_command_sync, argv, cwd=cwd, timeout_s=timeout_s)


def spawn_detached(argv: Sequence[str]) -> Optional[str]:
    """Start a process without waiting for it. Returns an error string on failure."""
    try:
        subprocess.Popen(
            [str(a) for a in argv],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        return str(e)
    return None
