"""Error taxonomy shared by the channel, recovery, pipeline and tool surface."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BridgeError(Exception):
    """Base error carrying a stable code for the tool surface."""

    code = "bridge_error"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        if code:
            self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotConnected(BridgeError):
    code = "not_connected"

    def __init__(self, message: str = "Premiere not connected. Is it running with the CEP panel installed?"):
        super().__init__(message)


class RequestTimeout(BridgeError):
    code = "timeout"

    def __init__(self, timeout_s: float, *, request_id: Optional[int] = None, command: str = ""):
        ms = int(round(float(timeout_s) * 1000))
        super().__init__(
            f"Request timed out after {ms}ms",
            details={"request_id": request_id, "command": command, "timeout_ms": ms},
        )


class RemoteError(BridgeError):
    """The peer answered with an explicit error; the message is passed through verbatim."""

    code = "remote_error"


class StageFailure(BridgeError):
    code = "stage_failure"

    def __init__(self, stage: str, message: str):
        super().__init__(message, details={"stage": stage})
        self.stage = stage


class CapabilityError(BridgeError):
    code = "capability_error"
