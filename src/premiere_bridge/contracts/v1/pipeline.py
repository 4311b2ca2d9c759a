from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


StepStatus = Literal["pending", "running", "success", "failed"]


class PipelineStepRecord(BaseModel):
    name: str
    status: StepStatus = "pending"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PipelineRun(BaseModel):
    """Step-by-step report of one pipeline invocation."""

    steps: List[PipelineStepRecord] = Field(default_factory=list)
    overall_success: bool = False
    first_error: Optional[str] = None
    started_at: str = ""
    finished_at: str = ""

    model_config = ConfigDict(frozen=True)

    def step(self, name: str) -> Optional[PipelineStepRecord]:
        for s in self.steps:
            if s.name == name:
                return s
        return None
