from __future__ import annotations

from .pipeline import PipelineRun, PipelineStepRecord, StepStatus
from .wire import (
    AutoSetupNotice,
    CommandMessage,
    HeartbeatMessage,
    InboundMessage,
    ResponseMessage,
    UnknownMessage,
    encode_command,
    parse_inbound,
)

__all__ = [
    "AutoSetupNotice",
    "CommandMessage",
    "HeartbeatMessage",
    "InboundMessage",
    "PipelineRun",
    "PipelineStepRecord",
    "ResponseMessage",
    "StepStatus",
    "UnknownMessage",
    "encode_command",
    "parse_inbound",
]
