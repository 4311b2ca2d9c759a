"""Bounded polling shared by recovery stages and pipeline steps.

Every wait in the coordinator is expressed as a RetryPolicy evaluated against a Clock,
so tests can swap in a clock whose sleep advances time instantly.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional


class Clock:
    """Monotonic time for deadlines, wall time for timestamps, and a cooperative sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    def time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, float(seconds)))


SYSTEM_CLOCK = Clock()


@dataclass(frozen=True)
class RetryPolicy:
    """Poll every `interval_s`, stopping after `max_attempts` probes or `deadline_s` seconds.

    At least one bound must be set.
    """

    interval_s: float
    max_attempts: Optional[int] = None
    deadline_s: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts is None and self.deadline_s is None:
            raise ValueError("RetryPolicy needs max_attempts or deadline_s")


@dataclass(frozen=True)
class PollResult:
    ok: bool
    attempts: int
    elapsed_s: float

    def __bool__(self) -> bool:
        return self.ok


async def poll_until(
    probe: Callable[[], Awaitable[bool]],
    policy: RetryPolicy,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> PollResult:
    """Run `probe` until it returns True or the policy is exhausted.

    Exceptions from the probe propagate; callers that treat a raising probe as a miss
    must catch inside the probe.
    """
    start = clock.monotonic()
    attempts = 0
    while True:
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            break
        if policy.deadline_s is not None and clock.monotonic() - start >= policy.deadline_s:
            break
        attempts += 1
        if await probe():
            return PollResult(ok=True, attempts=attempts, elapsed_s=clock.monotonic() - start)
        await clock.sleep(policy.interval_s)
    return PollResult(ok=False, attempts=attempts, elapsed_s=clock.monotonic() - start)
