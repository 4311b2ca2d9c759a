"""Host restart with dialog handling.

Stages, in order, each bounded:

    prewatch          start the background dialog watcher
    terminate         kill the host by process match (no match is fine)
    settle            fixed pause so the OS releases resources
    dismiss_residual  clear a crash reporter left over from the previous crash
    relaunch          open the test project through the OS file association
    await_ready       poll until no modal dialog is up and the main window exists
    await_peer        poll until a *new* peer connection is attached

The watcher is stopped on every exit path before the result is returned.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import StageFailure
from ..host import HostCapabilities
from ..kernel.retry import Clock, RetryPolicy, poll_until
from ..kernel.state import CoordinatorState

logger = logging.getLogger("premiere_bridge.recovery")


async def _capability(name: str, fn: Callable[[], Awaitable[bool]]) -> bool:
    """Invoke a host capability; a raising capability counts as False."""
    try:
        return bool(await fn())
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"[capability] {name} failed: {e}")
        return False


class DialogWatcher:
    """Background task that keeps dismissing crash/recovery dialogs at a fixed interval."""

    def __init__(self, host: HostCapabilities, *, interval_s: float, clock: Clock) -> None:
        self._host = host
        self._interval_s = interval_s
        self._clock = clock
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("[watcher] starting dialog watcher")
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[watcher] stopped dialog watcher")

    async def _loop(self) -> None:
        while True:
            await _capability("dismiss_crash_reporter", self._host.dismiss_crash_reporter)
            await _capability("dismiss_recovery_dialog", self._host.dismiss_recovery_dialog)
            await self._clock.sleep(self._interval_s)


@dataclass
class RecoveryRun:
    stage: str = "prewatch"
    started_at: float = 0.0
    stage_deadline: Optional[float] = None


@dataclass(frozen=True)
class RecoveryResult:
    success: bool
    message: str
    stage: str
    elapsed_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stage": self.stage,
            "elapsed_s": round(self.elapsed_s, 3),
        }


class RecoveryOrchestrator:
    def __init__(
        self,
        state: CoordinatorState,
        host: HostCapabilities,
        *,
        watcher: Optional[DialogWatcher] = None,
    ) -> None:
        self._state = state
        self._host = host
        self._watcher = watcher or DialogWatcher(
            host, interval_s=state.config.dialog_watch_interval_s, clock=state.clock
        )
        self._current: Optional[RecoveryRun] = None

    @property
    def watcher(self) -> DialogWatcher:
        return self._watcher

    @property
    def in_progress(self) -> bool:
        return self._current is not None

    def current_stage(self) -> Optional[str]:
        return self._current.stage if self._current else None

    async def restart(self) -> RecoveryResult:
        if self._current is not None:
            return RecoveryResult(success=False, message="restart already in progress", stage=self._current.stage)

        cfg = self._state.config
        clock = self._state.clock
        run = RecoveryRun(started_at=clock.monotonic())
        self._current = run
        generation = self._state.connection_generation
        logger.info("[restart] restarting host", extra={"stage": run.stage})

        self._watcher.start()
        try:
            self._enter(run, "terminate")
            await _capability("terminate", self._host.terminate)

            self._enter(run, "settle", cfg.kill_settle_s)
            await clock.sleep(cfg.kill_settle_s)

            self._enter(run, "dismiss_residual")
            await _capability("dismiss_crash_reporter", self._host.dismiss_crash_reporter)

            self._enter(run, "relaunch")
            project = Path(cfg.test_project_path).expanduser()
            if not await _capability("open_project", lambda: self._host.open_project(project)):
                logger.warning(f"[restart] open request for {project} reported failure; waiting anyway")

            self._enter(run, "await_ready", cfg.ready_deadline_s)
            ready = await poll_until(
                self._host_ready,
                RetryPolicy(interval_s=cfg.ready_poll_interval_s, deadline_s=cfg.ready_deadline_s),
                clock=clock,
            )
            if not ready:
                raise StageFailure(
                    "await_ready", f"Premiere did not become ready within {cfg.ready_deadline_s:g}s"
                )
            logger.info("[restart] host is ready, waiting for panel connection")

            self._enter(run, "await_peer", cfg.peer_deadline_s)
            connected = await poll_until(
                lambda: self._peer_reattached(generation),
                RetryPolicy(interval_s=cfg.peer_poll_interval_s, deadline_s=cfg.peer_deadline_s),
                clock=clock,
            )
            if not connected:
                raise StageFailure(
                    "await_peer",
                    f"Premiere started but CEP panel did not connect within {cfg.peer_deadline_s:g}s. "
                    "Make sure to open Window > Extensions > the bridge panel",
                )

            run.stage = "done"
            logger.info("[restart] panel connected")
            return RecoveryResult(
                success=True,
                message="Premiere restarted and CEP panel connected",
                stage=run.stage,
                elapsed_s=clock.monotonic() - run.started_at,
            )
        except StageFailure as e:
            logger.error(f"[restart] {e.message}", extra={"stage": e.stage})
            return RecoveryResult(
                success=False, message=e.message, stage=e.stage, elapsed_s=clock.monotonic() - run.started_at
            )
        finally:
            await self._watcher.stop()
            self._current = None

    def _enter(self, run: RecoveryRun, stage: str, budget_s: Optional[float] = None) -> None:
        run.stage = stage
        run.stage_deadline = None if budget_s is None else self._state.clock.monotonic() + budget_s
        logger.debug(f"[restart] stage {stage}", extra={"stage": stage})

    async def _host_ready(self) -> bool:
        await _capability("dismiss_crash_reporter", self._host.dismiss_crash_reporter)
        if not await _capability("is_running", self._host.is_running):
            return False
        await _capability("dismiss_recovery_dialog", self._host.dismiss_recovery_dialog)
        if await _capability("has_modal_dialog", self._host.has_modal_dialog):
            return False
        return await _capability("main_window_ready", self._host.main_window_ready)

    async def _peer_reattached(self, generation: int) -> bool:
        return self._state.is_connected() and self._state.connection_generation > generation
