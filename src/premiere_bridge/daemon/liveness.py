"""Peer liveness and crash classification.

Connected/Disconnected follows the channel. After a disconnect the monitor waits a
short settle delay (a graceful quit finishes tearing the process down), then probes
the host process. Process gone plus at least one heartbeat ever received means the
host crashed; anything else is an expected shutdown or a peer that never came up.
The monitor never evicts a silent connection on its own.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Set

from ..host import HostCapabilities
from ..host.crash_logs import latest_crash_log
from ..kernel.state import CoordinatorState

logger = logging.getLogger("premiere_bridge.liveness")


class LivenessMonitor:
    def __init__(self, state: CoordinatorState, host: HostCapabilities) -> None:
        self._state = state
        self._host = host
        self._tasks: Set["asyncio.Task[bool]"] = set()

    # PeerObserver ---------------------------------------------------------

    def on_attached(self) -> None:
        self._state.liveness.last_heartbeat_mono = self._state.clock.monotonic()

    def on_heartbeat(self) -> None:
        lv = self._state.liveness
        lv.last_heartbeat_mono = self._state.clock.monotonic()
        lv.heartbeats_received += 1

    def on_notice(self, result: Dict[str, Any]) -> None:
        self._state.liveness.last_auto_setup = dict(result or {})
        logger.info(f"[notice] auto-setup complete: {result}")

    def on_closed(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check_for_crash())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ---------------------------------------------------------------------

    async def check_for_crash(self) -> bool:
        """Classify the last disconnect. Returns True when a crash was recorded."""
        cfg = self._state.config
        await self._state.clock.sleep(cfg.disconnect_settle_s)
        if self._state.is_connected():
            # Peer came back during the settle delay.
            return False
        try:
            running = await self._host.is_running()
        except Exception as e:
            logger.warning(f"[crash_check] process probe failed: {e}")
            return False
        lv = self._state.liveness
        if running or lv.heartbeats_received <= 0:
            logger.info(f"[crash_check] no crash (running={running} heartbeats={lv.heartbeats_received})")
            return False

        now = self._state.clock.time()
        lv.last_crash_at = now
        lv.last_crash_report = self.capture_crash_report(now=now)
        logger.error(
            f"[crash_check] host appears to have crashed (report={'yes' if lv.last_crash_report else 'none'})"
        )
        return True

    def capture_crash_report(self, *, now: Optional[float] = None) -> Optional[str]:
        cfg = self._state.config
        return latest_crash_log(
            Path(cfg.crash_log_dir).expanduser(),
            name_contains=cfg.host_process_pattern,
            suffixes=cfg.crash_log_suffixes,
            now=self._state.clock.time() if now is None else now,
            window_s=cfg.crash_recency_window_s,
            max_bytes=cfg.crash_log_max_bytes,
        )

    async def wait_idle(self) -> None:
        """Wait for in-flight crash checks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for t in list(self._tasks):
            t.cancel()
        await self.wait_idle()
