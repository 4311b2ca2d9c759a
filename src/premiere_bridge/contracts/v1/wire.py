"""Messages exchanged with the host-side panel over the peer WebSocket."""

from __future__ import annotations

import json
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CommandMessage(BaseModel):
    type: Literal["command"] = "command"
    requestId: int
    command: str
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ResponseMessage(BaseModel):
    type: Literal["response"] = "response"
    requestId: int
    result: Optional[Any] = None
    error: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class HeartbeatMessage(BaseModel):
    type: Literal["heartbeat"] = "heartbeat"

    model_config = ConfigDict(extra="ignore")


class AutoSetupNotice(BaseModel):
    type: Literal["auto_setup_complete"] = "auto_setup_complete"
    result: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class UnknownMessage(BaseModel):
    type: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


InboundMessage = Union[ResponseMessage, HeartbeatMessage, AutoSetupNotice, UnknownMessage]

_INBOUND_MODELS = {
    "response": ResponseMessage,
    "heartbeat": HeartbeatMessage,
    "auto_setup_complete": AutoSetupNotice,
}


def parse_inbound(raw: Union[str, bytes]) -> InboundMessage:
    """Decode one inbound frame into its tagged variant.

    Raises ValueError (pydantic's ValidationError included) for frames that are not
    JSON objects or that carry a known type with an invalid body.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    obj = json.loads(raw)
    if not isinstance(obj, dict):
        raise ValueError("inbound frame must be a JSON object")
    kind = str(obj.get("type") or "")
    model = _INBOUND_MODELS.get(kind)
    if model is None:
        return UnknownMessage(type=kind, raw=obj)
    return model.model_validate(obj)


def encode_command(request_id: int, command: str, params: Optional[Dict[str, Any]] = None) -> str:
    msg = CommandMessage(requestId=request_id, command=command, params=dict(params or {}))
    return json.dumps(msg.model_dump(), ensure_ascii=False)
