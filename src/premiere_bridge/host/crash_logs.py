from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..util.fs import read_head_text

logger = logging.getLogger("premiere_bridge.crash_logs")


@dataclass(frozen=True)
class CrashArtifact:
    path: Path
    mtime: float


def list_crash_artifacts(crash_dir: Path, *, name_contains: str, suffixes: Sequence[str]) -> List[CrashArtifact]:
    """Matching crash reports, most recently modified first."""
    if not crash_dir.is_dir():
        return []
    out: List[CrashArtifact] = []
    for p in crash_dir.iterdir():
        if name_contains not in p.name:
            continue
        if suffixes and not any(p.name.endswith(s) for s in suffixes):
            continue
        try:
            out.append(CrashArtifact(path=p, mtime=p.stat().st_mtime))
        except OSError:
            continue
    out.sort(key=lambda a: a.mtime, reverse=True)
    return out


def latest_crash_log(
    crash_dir: Path,
    *,
    name_contains: str,
    suffixes: Sequence[str],
    now: float,
    window_s: float,
    max_bytes: int,
) -> Optional[str]:
    """Text of the newest crash report modified within `window_s` of `now`, capped to `max_bytes`.

    Older reports are never returned, so a stale crash from a previous session is not
    attributed to the current disconnect.
    """
    try:
        artifacts = list_crash_artifacts(crash_dir, name_contains=name_contains, suffixes=suffixes)
    except OSError as e:
        logger.warning(f"[crash_logs] error reading crash logs: {e}")
        return None
    cutoff = now - window_s
    for artifact in artifacts:
        if artifact.mtime <= cutoff:
            break
        try:
            return read_head_text(artifact.path, max_bytes)
        except OSError as e:
            logger.warning(f"[crash_logs] error reading {artifact.path}: {e}")
            return None
    return None
