"""Process-wide coordinator state.

Created once at startup and passed to every component. Only the channel and the
liveness monitor mutate it, always between suspension points.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from .retry import SYSTEM_CLOCK, Clock
from .settings import BridgeConfig


class PeerConnection(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass
class PendingRequest:
    request_id: int
    command: str
    future: "asyncio.Future[Any]"
    timer: Optional[asyncio.TimerHandle] = None

    def settle(self, *, result: Any = None, error: Optional[BaseException] = None) -> bool:
        """Resolve the waiting caller once; later calls are no-ops and return False."""
        if self.future.done():
            return False
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)
        return True


@dataclass
class LivenessState:
    last_heartbeat_mono: float = 0.0
    heartbeats_received: int = 0
    last_crash_at: Optional[float] = None
    last_crash_report: Optional[str] = None
    last_auto_setup: Optional[Dict[str, Any]] = None


@dataclass
class CoordinatorState:
    config: BridgeConfig = field(default_factory=BridgeConfig)
    clock: Clock = SYSTEM_CLOCK
    connection: Optional[PeerConnection] = None
    connection_generation: int = 0
    pending: Dict[int, PendingRequest] = field(default_factory=dict)
    last_request_id: int = 0
    liveness: LivenessState = field(default_factory=LivenessState)

    def is_connected(self) -> bool:
        return self.connection is not None

    def allocate_request_id(self) -> int:
        self.last_request_id += 1
        return self.last_request_id

    def heartbeat_age_ms(self) -> Optional[int]:
        if self.connection is None:
            return None
        return int(max(0.0, self.clock.monotonic() - self.liveness.last_heartbeat_mono) * 1000)
