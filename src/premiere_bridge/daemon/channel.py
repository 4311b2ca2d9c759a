"""Correlated request/response channel over the single peer connection.

Outbound commands carry a monotonically increasing requestId; the peer echoes it on
its response. Each caller is resolved exactly once: by its own response, by an explicit
remote error, or by its local timeout. Responses for ids that are no longer pending
(already timed out, or never issued) are dropped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol, Union

from ..contracts.v1 import (
    AutoSetupNotice,
    HeartbeatMessage,
    ResponseMessage,
    encode_command,
    parse_inbound,
)
from ..errors import NotConnected, RemoteError, RequestTimeout
from ..kernel.state import CoordinatorState, PeerConnection, PendingRequest

logger = logging.getLogger("premiere_bridge.channel")


class PeerObserver(Protocol):
    def on_attached(self) -> None: ...

    def on_heartbeat(self) -> None: ...

    def on_notice(self, result: Dict[str, Any]) -> None: ...

    def on_closed(self) -> None: ...


class CorrelatedChannel:
    def __init__(self, state: CoordinatorState, observer: Optional[PeerObserver] = None) -> None:
        self._state = state
        self._observer = observer

    def is_connected(self) -> bool:
        return self._state.is_connected()

    def pending_count(self) -> int:
        return len(self._state.pending)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def attach(self, conn: PeerConnection) -> None:
        """Make `conn` the authoritative peer connection, replacing any previous one.

        Requests already sent on the previous connection stay pending until their timeout.
        """
        replaced = self._state.connection is not None
        self._state.connection = conn
        self._state.connection_generation += 1
        logger.info(
            f"[attach] peer connected generation={self._state.connection_generation} replaced={replaced}"
        )
        if self._observer is not None:
            self._observer.on_attached()

    def detach(self, conn: PeerConnection) -> bool:
        """Handle close of `conn`. Closing a connection that was already replaced is a no-op."""
        if self._state.connection is not conn:
            logger.info("[detach] ignoring close of a replaced connection")
            return False
        self._state.connection = None
        logger.info(f"[detach] peer disconnected pending={len(self._state.pending)}")
        if self._observer is not None:
            self._observer.on_closed()
        return True

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, command: str, params: Optional[Dict[str, Any]] = None, timeout_s: Optional[float] = None) -> Any:
        conn = self._state.connection
        if conn is None:
            raise NotConnected()

        timeout = self._state.config.request_timeout_s if timeout_s is None else max(0.0, float(timeout_s))
        loop = asyncio.get_running_loop()
        request_id = self._state.allocate_request_id()
        pending = PendingRequest(request_id=request_id, command=command, future=loop.create_future())
        pending.timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._state.pending[request_id] = pending

        # Caller cancellation at any await leaves nothing behind; a late response is then dropped.
        try:
            try:
                await conn.send_text(encode_command(request_id, command, params))
            except Exception as e:
                logger.warning(f"[send] write failed: {e}", extra={"request_id": request_id, "command": command})
                raise NotConnected(f"Premiere connection lost while sending: {e}") from e
            logger.debug("[send] dispatched", extra={"request_id": request_id, "command": command})
            return await pending.future
        finally:
            self._discard(request_id)

    def _discard(self, request_id: int) -> None:
        pending = self._state.pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

    def _expire(self, request_id: int, timeout_s: float) -> None:
        pending = self._state.pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer = None
        logger.warning("[timeout] no response", extra={"request_id": request_id, "command": pending.command})
        pending.settle(error=RequestTimeout(timeout_s, request_id=request_id, command=pending.command))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def receive(self, conn: PeerConnection, raw: Union[str, bytes]) -> None:
        """Dispatch one inbound frame. Malformed frames are logged and dropped."""
        if conn is not self._state.connection:
            logger.debug("[receive] frame from replaced connection dropped")
            return
        try:
            msg = parse_inbound(raw)
        except ValueError as e:
            logger.warning(f"[receive] error parsing message: {e}")
            return

        if isinstance(msg, ResponseMessage):
            self._resolve(msg)
        elif isinstance(msg, HeartbeatMessage):
            if self._observer is not None:
                self._observer.on_heartbeat()
        elif isinstance(msg, AutoSetupNotice):
            if self._observer is not None:
                self._observer.on_notice(msg.result)
        else:
            logger.info(f"[receive] ignoring message type={msg.type!r}")

    def _resolve(self, msg: ResponseMessage) -> None:
        pending = self._state.pending.pop(msg.requestId, None)
        if pending is None:
            logger.debug("[receive] response without pending request dropped", extra={"request_id": msg.requestId})
            return
        if msg.error is not None:
            pending.settle(error=RemoteError(msg.error))
        else:
            pending.settle(result=msg.result)
