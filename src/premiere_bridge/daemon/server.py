"""Coordinator lifecycle: one state object, one event loop, two ports.

The peer (host-side panel) connects to the FastAPI WebSocket endpoint; the agent talks
MCP over stdio. Both run on the same asyncio loop, so the channel and liveness state
are only ever touched from one thread.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import uvicorn

from ..host import HostCapabilities, SystemHost
from ..kernel.retry import Clock, SYSTEM_CLOCK
from ..kernel.settings import BridgeConfig, load_config
from ..kernel.state import CoordinatorState
from ..util.time import epoch_to_iso
from .channel import CorrelatedChannel
from .liveness import LivenessMonitor
from .ops import media_ops
from .pipeline import AutonomousTestPipeline
from .recovery import RecoveryOrchestrator

logger = logging.getLogger("premiere_bridge.server")


class Coordinator:
    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        host: Optional[HostCapabilities] = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        cfg = config or load_config()
        self.state = CoordinatorState(config=cfg, clock=clock)
        self.host: HostCapabilities = host or SystemHost(cfg)
        self.monitor = LivenessMonitor(self.state, self.host)
        self.channel = CorrelatedChannel(self.state, observer=self.monitor)
        self.recovery = RecoveryOrchestrator(self.state, self.host)
        self.pipeline = AutonomousTestPipeline(
            self.state,
            self.channel,
            self.recovery,
            analyze=lambda: media_ops.analyze_export(self.state.config),
        )

    @property
    def config(self) -> BridgeConfig:
        return self.state.config

    async def send(self, command: str, params: Optional[Dict[str, Any]] = None, timeout_s: Optional[float] = None) -> Any:
        return await self.channel.send(command, params or {}, timeout_s=timeout_s)

    async def status(self) -> Dict[str, Any]:
        lv = self.state.liveness
        try:
            running, pid = await asyncio.wait_for(
                asyncio.gather(self.host.is_running(), self.host.pid()),
                timeout=self.config.status_timeout_s,
            )
        except asyncio.TimeoutError:
            running, pid = None, None
        return {
            "premiere_running": running,
            "cep_panel_connected": self.state.is_connected(),
            "premiere_pid": pid,
            "last_heartbeat_ago_ms": self.state.heartbeat_age_ms(),
            "last_crash_time": epoch_to_iso(lv.last_crash_at),
            "last_auto_setup": lv.last_auto_setup,
            "pending_requests": self.channel.pending_count(),
            "recovery_stage": self.recovery.current_stage(),
        }

    async def close(self) -> None:
        await self.monitor.close()
        await self.recovery.watcher.stop()


async def serve(coordinator: Coordinator, *, log_level: str = "warning") -> int:
    """Run the peer endpoint and the MCP stdio loop until stdin closes."""
    from ..ports.mcp.main import run_stdio
    from ..ports.web.app import create_app

    cfg = coordinator.config
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(coordinator),
            host=cfg.ws_host,
            port=int(cfg.ws_port),
            log_level=log_level,
            # Default uvicorn logging writes access lines to stdout.
            log_config=None,
            access_log=False,
            lifespan="off",
        )
    )
    web_task = asyncio.create_task(server.serve(), name="premiere-bridge-web")
    logger.info(f"[serve] peer endpoint on ws://{cfg.ws_host}:{cfg.ws_port}")
    try:
        await run_stdio(coordinator)
    finally:
        server.should_exit = True
        try:
            await asyncio.wait_for(web_task, timeout=5.0)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            web_task.cancel()
        await coordinator.close()
    return 0


def serve_forever(config: Optional[BridgeConfig] = None, *, log_level: str = "warning") -> int:
    try:
        return asyncio.run(serve(Coordinator(config), log_level=log_level))
    except KeyboardInterrupt:
        return 0
