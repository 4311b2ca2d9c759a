"""Ordered, abort-on-first-failure step runner and the autonomous test cycle built on it.

A step succeeds only when its result payload says `success: true`; a raised error is
converted into a failed payload. The first failure stops the run, later steps stay
`pending`, and the report carries that step's error text as `first_error`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..contracts.v1 import PipelineRun, PipelineStepRecord, StepStatus
from ..errors import BridgeError
from ..kernel.retry import Clock, PollResult, RetryPolicy, poll_until
from ..kernel.state import CoordinatorState
from ..util.fs import file_size
from ..util.time import utc_now_iso
from .channel import CorrelatedChannel
from .recovery import RecoveryOrchestrator

logger = logging.getLogger("premiere_bridge.pipeline")

StepFn = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class PipelineStep:
    name: str
    run: StepFn


@dataclass
class _StepState:
    name: str
    status: StepStatus = "pending"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def freeze(self) -> PipelineStepRecord:
        return PipelineStepRecord(name=self.name, status=self.status, result=self.result, error=self.error)


async def execute_steps(steps: Sequence[PipelineStep]) -> PipelineRun:
    started_at = utc_now_iso()
    states = [_StepState(name=s.name) for s in steps]
    first_error: Optional[str] = None
    overall = bool(steps)

    for step, st in zip(steps, states):
        st.status = "running"
        logger.info(f"[pipeline] step {step.name} started", extra={"step": step.name})
        try:
            result = await step.run()
        except BridgeError as e:
            result = {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            result = {"success": False, "error": str(e) or e.__class__.__name__}
        if not isinstance(result, dict):
            result = {"success": False, "error": f"step returned {type(result).__name__}, expected object"}

        st.result = result
        if result.get("success"):
            st.status = "success"
            continue

        st.status = "failed"
        st.error = str(result.get("error") or result.get("message") or f"step {step.name} failed")
        first_error = st.error
        overall = False
        logger.error(f"[pipeline] step {step.name} failed: {st.error}", extra={"step": step.name})
        break

    return PipelineRun(
        steps=[s.freeze() for s in states],
        overall_success=overall,
        first_error=first_error,
        started_at=started_at,
        finished_at=utc_now_iso(),
    )


async def wait_for_stable_file(
    path: Path,
    *,
    policy: RetryPolicy,
    sample_delay_s: float,
    clock: Clock,
    size_of: Callable[[Path], int] = file_size,
) -> PollResult:
    """Poll until two size samples `sample_delay_s` apart are equal and non-zero."""

    async def _stable() -> bool:
        first = size_of(path)
        if first <= 0:
            return False
        await clock.sleep(sample_delay_s)
        second = size_of(path)
        return first == second

    return await poll_until(_stable, policy, clock=clock)


class AutonomousTestPipeline:
    """restart (if needed) → open project → apply effect → wait → export → await file → analyze."""

    def __init__(
        self,
        state: CoordinatorState,
        channel: CorrelatedChannel,
        orchestrator: RecoveryOrchestrator,
        analyze: StepFn,
    ) -> None:
        self._state = state
        self._channel = channel
        self._orchestrator = orchestrator
        self._analyze = analyze

    def _remote(self, command: str, params: Optional[Dict[str, Any]] = None) -> StepFn:
        async def _run() -> Dict[str, Any]:
            result = await self._channel.send(command, params or {})
            if isinstance(result, dict):
                return result
            return {"success": False, "error": f"unexpected response to {command}: {result!r}"}

        return _run

    async def _ensure_connected(self) -> Dict[str, Any]:
        res = await self._orchestrator.restart()
        out = res.to_dict()
        if not res.success:
            out["error"] = f"Failed to start Premiere: {res.message}"
        return out

    async def _wait_for_processing(self) -> Dict[str, Any]:
        wait_s = self._state.config.effect_processing_wait_s
        logger.info(f"[pipeline] waiting {wait_s:g}s for effect to process")
        await self._state.clock.sleep(wait_s)
        return {"success": True, "waited_s": wait_s}

    async def _await_export(self) -> Dict[str, Any]:
        cfg = self._state.config
        path = cfg.export_output_path
        res = await wait_for_stable_file(
            path,
            policy=RetryPolicy(interval_s=cfg.export_poll_interval_s, max_attempts=cfg.export_poll_attempts),
            sample_delay_s=cfg.export_sample_delay_s,
            clock=self._state.clock,
        )
        if not res:
            return {
                "success": False,
                "error": f"Export file not ready after {res.attempts} attempts",
                "path": str(path),
            }
        return {"success": True, "path": str(path), "size": file_size(path), "attempts": res.attempts}

    def build_steps(self) -> List[PipelineStep]:
        steps: List[PipelineStep] = []
        if not self._channel.is_connected():
            steps.append(PipelineStep("restart_premiere", self._ensure_connected))
        steps.extend(
            [
                PipelineStep("open_project", self._remote("open_test_project")),
                PipelineStep("apply_effect", self._remote("apply_effect")),
                PipelineStep("wait_for_processing", self._wait_for_processing),
                PipelineStep("export_sequence", self._remote("export_sequence")),
                PipelineStep("await_export", self._await_export),
                PipelineStep("analyze_export", self._analyze),
            ]
        )
        return steps

    async def run(self) -> PipelineRun:
        logger.info("[pipeline] starting autonomous test cycle")
        return await execute_steps(self.build_steps())
