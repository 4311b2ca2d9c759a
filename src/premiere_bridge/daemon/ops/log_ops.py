"""Plugin debug log and host crash log access."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ...kernel.settings import BridgeConfig
from ...kernel.state import CoordinatorState
from ...host.crash_logs import latest_crash_log
from ...util.fs import tail_lines

NO_DEBUG_LOG = "(no debug log file found)"
NO_CRASH_LOG = "(no recent crash logs found)"


def get_debug_log(cfg: BridgeConfig, lines: int = 100) -> Dict[str, Any]:
    path = Path(cfg.plugin_debug_log).expanduser()
    if not path.exists():
        return {"log": NO_DEBUG_LOG, "lines": 0}
    try:
        text, total = tail_lines(path, lines)
    except OSError as e:
        return {"log": f"Error reading log: {e}", "lines": 0}
    return {"log": text, "lines": total}


def clear_debug_log(cfg: BridgeConfig) -> Dict[str, Any]:
    path = Path(cfg.plugin_debug_log).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")
    except OSError as e:
        return {"success": False, "error": str(e)}
    return {"success": True}


def get_crash_log(state: CoordinatorState) -> str:
    """Fresh crash report within the recency window, else the one captured at the last crash."""
    cfg = state.config
    fresh = latest_crash_log(
        Path(cfg.crash_log_dir).expanduser(),
        name_contains=cfg.host_process_pattern,
        suffixes=cfg.crash_log_suffixes,
        now=state.clock.time(),
        window_s=cfg.crash_recency_window_s,
        max_bytes=cfg.crash_log_max_bytes,
    )
    return fresh or state.liveness.last_crash_report or NO_CRASH_LOG
