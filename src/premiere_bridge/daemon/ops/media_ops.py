"""Offline CLI renders, ffmpeg frame extraction and export analysis."""
from __future__ import annotations

import asyncio
import base64
import re
from pathlib import Path
from typing import Any, Dict, Optional

from ...host.shell import run_command
from ...kernel.settings import BridgeConfig

_NUMBER = re.compile(r"[\d.]+")

CLI_PARAM_DEFAULTS: Dict[str, int] = {
    "mosh_frame": 10,
    "duration": 30,
    "block_size": 16,
    "search_range": 16,
    "blend": 100,
}

_CLI_FLAGS = {
    "mosh_frame": "-f",
    "duration": "-d",
    "block_size": "-b",
    "search_range": "-s",
    "blend": "-m",
}


def cli_params(arguments: Dict[str, Any]) -> Dict[str, int]:
    """Named numeric CLI parameters, falling back to defaults for missing or zero values."""
    out: Dict[str, int] = {}
    for key, default in CLI_PARAM_DEFAULTS.items():
        try:
            v = int(arguments.get(key) or default)
        except (TypeError, ValueError):
            v = default
        out[key] = v
    return out


async def run_cli_datamosh(cfg: BridgeConfig, params: Dict[str, int]) -> Dict[str, Any]:
    output_video = cfg.cli_output_path
    argv = [str(cfg.cli_tool_path), "-i", str(cfg.test_video_path), "-o", str(output_video)]
    for key, flag in _CLI_FLAGS.items():
        argv += [flag, str(params.get(key, CLI_PARAM_DEFAULTS[key]))]
    res = await run_command(argv, cwd=cfg.cli_dir, timeout_s=cfg.cli_timeout_s)
    output = res.output
    success = "Done!" in output or output_video.exists()
    return {
        "success": success,
        "command": " ".join(argv),
        "output": output[-2000:],
        "outputVideo": str(output_video) if success else None,
        "error": res.error or (None if res.ok else f"exit code {res.returncode}"),
    }


async def extract_frame(cfg: BridgeConfig, video: Path, frame: int, output: Path) -> Dict[str, Any]:
    """Extract one frame to PNG; on success returns it base64-encoded."""
    argv = ["ffmpeg", "-y", "-i", str(video), "-vf", f"select=eq(n\\,{int(frame)})", "-vframes", "1", str(output)]
    output.unlink(missing_ok=True)
    res = await run_command(argv, timeout_s=cfg.ffmpeg_timeout_s)
    if not output.exists():
        return {"success": False, "error": res.error or "Failed to extract frame"}
    data = await asyncio.to_thread(output.read_bytes)
    return {"success": True, "image": base64.b64encode(data).decode("ascii"), "path": str(output)}


async def get_cli_frame(cfg: BridgeConfig, frame: int, source: str = "output") -> Dict[str, Any]:
    video = cfg.test_video_path if source == "input" else cfg.cli_output_path
    out = cfg.cli_dir / f"temp_frame_{int(frame)}.png"
    res = await extract_frame(cfg, video, frame, out)
    if res.get("success"):
        res.update({"frame": int(frame), "source": source})
    return res


async def compare_cli_frames(cfg: BridgeConfig, frame: int) -> Dict[str, Any]:
    n = int(frame)
    before = await extract_frame(cfg, cfg.test_video_path, n, cfg.cli_dir / f"temp_input_{n}.png")
    after = await extract_frame(cfg, cfg.cli_output_path, n, cfg.cli_dir / f"temp_output_{n}.png")
    return {"frame": n, "input": before, "output": after}


def parse_rmse(output: str) -> Optional[float]:
    m = _NUMBER.search(output or "")
    if not m:
        return None
    try:
        return float(m.group(0))
    except ValueError:
        return None


async def analyze_export(cfg: BridgeConfig) -> Dict[str, Any]:
    """Compare two frames of the host export; visible difference means the effect is active."""
    export = cfg.export_output_path
    if not export.exists():
        return {"success": False, "error": f"export not found: {export}"}

    frames_dir = cfg.cli_dir / "premiere_frames"
    frames_dir.mkdir(parents=True, exist_ok=True)
    # Frames from an earlier run must never be scored.
    for stale in frames_dir.glob("frame_*.png"):
        stale.unlink(missing_ok=True)
    first, last = cfg.analysis_frame_first, cfg.analysis_frame_last
    extract = await run_command(
        [
            "ffmpeg",
            "-y",
            "-i",
            str(export),
            "-vf",
            f"select=gte(n\\,{first})*lte(n\\,{last})",
            "-vsync",
            "vfr",
            str(frames_dir / "frame_%03d.png"),
        ],
        timeout_s=cfg.ffmpeg_timeout_s * 4,
    )
    if not extract.ok:
        detail = extract.error or f"ffmpeg exit code {extract.returncode}: {extract.output.strip()[-500:]}"
        return {"success": False, "error": f"Could not extract frames from export ({detail})"}

    # Extracted frames are numbered from 1 starting at `first`.
    frame_a = frames_dir / f"frame_{cfg.analysis_frame_a - first + 1:03d}.png"
    frame_b = frames_dir / f"frame_{cfg.analysis_frame_b - first + 1:03d}.png"
    if not frame_a.exists() or not frame_b.exists():
        return {"success": False, "error": "Could not extract frames from export"}

    # `compare` exits 1 when images differ; only 2+ is a real failure.
    res = await run_command(["compare", "-metric", "RMSE", str(frame_a), str(frame_b), "null:"], timeout_s=cfg.ffmpeg_timeout_s)
    rmse = parse_rmse(res.output)
    if res.error or res.returncode > 1 or rmse is None:
        return {"success": False, "error": res.error or f"compare failed: {res.output.strip()[:500]}"}

    working = rmse > cfg.analysis_rmse_threshold
    return {
        "success": working,
        "message": "Mosh effect is visible in export" if working else "Frames look too similar - effect may not be working",
        "rmse": rmse,
        "frame_a": str(frame_a),
        "frame_b": str(frame_b),
        **({} if working else {"error": f"RMSE {rmse:g} is below threshold {cfg.analysis_rmse_threshold:g}"}),
    }
