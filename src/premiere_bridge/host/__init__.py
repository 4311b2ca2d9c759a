"""Host-application capabilities used by liveness and recovery.

Everything here is a leaf with a boolean contract; the coordinator only depends on
the HostCapabilities protocol so tests can substitute a scripted host.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from ..kernel.settings import BridgeConfig
from .dialogs import DialogAutomation
from .process import HostProcess


class HostCapabilities(Protocol):
    async def is_running(self) -> bool: ...

    async def pid(self) -> Optional[int]: ...

    async def terminate(self) -> bool: ...

    async def open_project(self, project_path: Path) -> bool: ...

    async def dismiss_crash_reporter(self) -> bool: ...

    async def dismiss_recovery_dialog(self) -> bool: ...

    async def has_modal_dialog(self) -> bool: ...

    async def main_window_ready(self) -> bool: ...


class SystemHost:
    """HostCapabilities backed by pgrep/pkill/open and System Events scripting."""

    def __init__(self, cfg: BridgeConfig) -> None:
        self._process = HostProcess(cfg.host_process_pattern)
        self._dialogs = DialogAutomation(cfg.host_app_name, timeout_s=cfg.osascript_timeout_s)

    async def is_running(self) -> bool:
        return await self._process.is_running()

    async def pid(self) -> Optional[int]:
        return await self._process.pid()

    async def terminate(self) -> bool:
        return await self._process.terminate()

    async def open_project(self, project_path: Path) -> bool:
        return await self._process.open_project(project_path)

    async def dismiss_crash_reporter(self) -> bool:
        return await self._dialogs.dismiss_crash_reporter()

    async def dismiss_recovery_dialog(self) -> bool:
        return await self._dialogs.dismiss_recovery_dialog()

    async def has_modal_dialog(self) -> bool:
        return await self._dialogs.has_modal_dialog()

    async def main_window_ready(self) -> bool:
        return await self._dialogs.main_window_ready()


__all__ = ["DialogAutomation", "HostCapabilities", "HostProcess", "SystemHost"]
