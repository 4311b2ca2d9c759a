from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from .shell import run_command, spawn_detached

logger = logging.getLogger("premiere_bridge.host")


class HostProcess:
    """OS-level presence and lifecycle of the host application, matched by command line."""

    def __init__(self, pattern: str) -> None:
        self._pattern = pattern

    async def pids(self) -> list[int]:
        res = await run_command(["pgrep", "-f", self._pattern], timeout_s=5.0)
        if not res.ok:
            return []
        out: list[int] = []
        for line in res.stdout.splitlines():
            line = line.strip()
            if line.isdigit():
                out.append(int(line))
        return out

    async def is_running(self) -> bool:
        return bool(await self.pids())

    async def pid(self) -> Optional[int]:
        pids = await self.pids()
        return pids[0] if pids else None

    async def terminate(self) -> bool:
        """Kill every matching process. False (not an error) when nothing matched."""
        res = await run_command(["pkill", "-f", self._pattern], timeout_s=5.0)
        if res.ok:
            logger.info("[terminate] killed existing host process")
            return True
        return False

    async def open_project(self, project_path: Path) -> bool:
        """Open the project through the OS file association; does not wait for the host."""
        opener = "open" if sys.platform == "darwin" else "xdg-open"
        err = spawn_detached([opener, str(project_path)])
        if err:
            logger.warning(f"[open] failed to open project {project_path}: {err}")
            return False
        logger.info(f"[open] opening project: {project_path}")
        return True
