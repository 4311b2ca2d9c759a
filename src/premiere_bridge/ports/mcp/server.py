"""
premiere-bridge MCP tools

Host control (through the coordinator):
- premiere_status: process / panel / heartbeat / crash status
- restart_premiere: kill, relaunch, dismiss dialogs, wait for the panel
- run_autonomous_test: full restart → effect → export → analysis cycle

Panel commands (forwarded over the peer WebSocket):
- open_test_project, get_project_info, apply_effect, export_sequence, render_frame,
  render_frame_range, get_source_frame, compare_frames, set_effect_param,
  get_effect_params, refresh_timeline, save_project

Local capabilities:
- build_plugin / install_plugin / build_and_install_plugin / build_cli_tool
- get_plugin_debug_log / clear_plugin_debug_log / get_last_crash_log
- run_cli_datamosh / get_cli_frame / compare_cli_frames / analyze_premiere_export
- read_source_file / edit_source_file
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ...daemon.ops import build_ops, log_ops, media_ops, source_ops
from ...daemon.server import Coordinator


class MCPError(Exception):
    """MCP tool call error"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


@dataclass
class ToolResult:
    content: List[Dict[str, Any]] = field(default_factory=list)

    def to_mcp(self) -> Dict[str, Any]:
        return {"content": self.content}


def _text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def _image_block(data: str, mime_type: str = "image/png") -> Dict[str, Any]:
    return {"type": "image", "data": data, "mimeType": mime_type}


def json_result(obj: Any) -> ToolResult:
    return ToolResult([_text_block(json.dumps(obj, ensure_ascii=False, indent=2))])


def text_result(text: str) -> ToolResult:
    return ToolResult([_text_block(text)])


def image_aware_result(result: Any) -> ToolResult:
    """Split `image` / `images` out of a payload into image content blocks."""
    if isinstance(result, dict) and result.get("image"):
        summary = {**result, "image": "(see image below)"}
        return ToolResult(
            [_text_block(json.dumps(summary, ensure_ascii=False, indent=2)), _image_block(str(result["image"]))]
        )
    if isinstance(result, dict) and isinstance(result.get("images"), list):
        images = result["images"]
        summary = {**result, "images": f"({len(images)} images below)"}
        blocks = [_text_block(json.dumps(summary, ensure_ascii=False, indent=2))]
        for img in images:
            data = img.get("data") if isinstance(img, dict) else img
            if data:
                blocks.append(_image_block(str(data)))
        return ToolResult(blocks)
    return json_result(result)


# =============================================================================
# Tool catalog
# =============================================================================

_NO_PARAMS: Dict[str, Any] = {"type": "object", "properties": {}, "required": []}


def _schema(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required or [])}


MCP_TOOLS: List[Dict[str, Any]] = [
    {
        "name": "premiere_status",
        "description": "Check if Premiere Pro is running and the CEP panel is connected. Includes heartbeat age and last crash time.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "build_plugin",
        "description": "Build the plugin with xcodebuild. Returns success, truncated output and parsed error lines.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "install_plugin",
        "description": "Install the newest built plugin into Premiere's plug-in directory.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "build_and_install_plugin",
        "description": "Build and install the plugin in one step. Install is skipped when the build fails.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "restart_premiere",
        "description": "Kill and restart Premiere Pro, dismiss crash/recovery dialogs, and wait for the CEP panel to reconnect.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "get_plugin_debug_log",
        "description": "Get the tail of the plugin debug log.",
        "inputSchema": _schema({"lines": {"type": "integer", "description": "Number of lines to return (default 100)", "default": 100}}),
    },
    {
        "name": "clear_plugin_debug_log",
        "description": "Clear the plugin debug log file.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "get_last_crash_log",
        "description": "Get the most recent Premiere crash report, if one was written recently.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "open_test_project",
        "description": "Open or create the test project with the test clip on a sequence.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "get_project_info",
        "description": "Get info about the currently open Premiere project.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "apply_effect",
        "description": "Apply the effect under test to the first clip in the timeline.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "export_sequence",
        "description": "Export the current sequence to a video file for analysis.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "render_frame",
        "description": "Render a specific frame and return it as an image.",
        "inputSchema": _schema({"frame": {"type": "integer", "description": "Frame number to render"}}, ["frame"]),
    },
    {
        "name": "render_frame_range",
        "description": "Render a range of frames and return them as images.",
        "inputSchema": _schema(
            {
                "start": {"type": "integer", "description": "Start frame"},
                "end": {"type": "integer", "description": "End frame"},
                "step": {"type": "integer", "description": "Step between frames (default 1)", "default": 1},
            },
            ["start", "end"],
        ),
    },
    {
        "name": "get_source_frame",
        "description": "Get a frame from the source clip (before any effects).",
        "inputSchema": _schema({"frame": {"type": "integer", "description": "Frame number"}}, ["frame"]),
    },
    {
        "name": "compare_frames",
        "description": "Compare two rendered frames and return difference metrics.",
        "inputSchema": _schema(
            {
                "frame_a": {"type": "integer", "description": "First frame number"},
                "frame_b": {"type": "integer", "description": "Second frame number"},
            },
            ["frame_a", "frame_b"],
        ),
    },
    {
        "name": "set_effect_param",
        "description": "Set a parameter on the effect under test.",
        "inputSchema": _schema(
            {
                "param": {"type": "string", "description": "Parameter name (mosh_frame, duration, block_size, search_range, blend)"},
                "value": {"type": "number", "description": "Parameter value"},
            },
            ["param", "value"],
        ),
    },
    {
        "name": "get_effect_params",
        "description": "Get all current parameter values of the effect under test.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "refresh_timeline",
        "description": "Force Premiere to re-render the timeline.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "save_project",
        "description": "Save the currently open Premiere project.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "build_cli_tool",
        "description": "Build the command-line version of the effect for offline testing.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "run_cli_datamosh",
        "description": "Run the command-line effect on the test video. Bypasses Premiere entirely and tests the core algorithm.",
        "inputSchema": _schema(
            {
                "mosh_frame": {"type": "integer", "description": "Frame where mosh starts (default 10)"},
                "duration": {"type": "integer", "description": "Duration in frames (default 30)"},
                "block_size": {"type": "integer", "description": "Block size: 8, 16, or 32 (default 16)"},
                "search_range": {"type": "integer", "description": "Search range (default 16)"},
                "blend": {"type": "integer", "description": "Blend amount 0-100 (default 100)"},
            }
        ),
    },
    {
        "name": "get_cli_frame",
        "description": "Extract a frame from the CLI input or output video as an image.",
        "inputSchema": _schema(
            {
                "frame": {"type": "integer", "description": "Frame number to extract"},
                "source": {"type": "string", "enum": ["input", "output"], "description": "'input' for original video, 'output' for moshed video (default 'output')", "default": "output"},
            },
            ["frame"],
        ),
    },
    {
        "name": "compare_cli_frames",
        "description": "Show the same frame from the CLI input and output videos.",
        "inputSchema": _schema({"frame": {"type": "integer", "description": "Frame number to compare"}}, ["frame"]),
    },
    {
        "name": "analyze_premiere_export",
        "description": "Analyze the exported video from Premiere, comparing frames to verify the effect is visible.",
        "inputSchema": _NO_PARAMS,
    },
    {
        "name": "read_source_file",
        "description": "Read a source file of the plugin project.",
        "inputSchema": _schema({"file": {"type": "string", "description": "File path relative to the project root"}}, ["file"]),
    },
    {
        "name": "edit_source_file",
        "description": "Replace the first occurrence of old_text with new_text in a source file of the plugin project.",
        "inputSchema": _schema(
            {
                "file": {"type": "string", "description": "File path relative to the project root"},
                "old_text": {"type": "string", "description": "Text to find and replace"},
                "new_text": {"type": "string", "description": "Replacement text"},
            },
            ["file", "old_text", "new_text"],
        ),
    },
    {
        "name": "run_autonomous_test",
        "description": "Run a full test cycle: restart Premiere if needed, open project, apply effect, wait for processing, export, and analyze frames. Stops at the first failed step.",
        "inputSchema": _NO_PARAMS,
    },
]

_TOOLS_BY_NAME: Dict[str, Dict[str, Any]] = {t["name"]: t for t in MCP_TOOLS}

# Commands the panel executes itself; arguments are forwarded as params.
REMOTE_TOOLS = frozenset(
    {
        "open_test_project",
        "get_project_info",
        "apply_effect",
        "export_sequence",
        "render_frame",
        "render_frame_range",
        "get_source_frame",
        "compare_frames",
        "set_effect_param",
        "get_effect_params",
        "refresh_timeline",
        "save_project",
    }
)


def _check_required(name: str, arguments: Dict[str, Any]) -> None:
    schema = _TOOLS_BY_NAME[name].get("inputSchema") or {}
    missing = [k for k in schema.get("required") or [] if arguments.get(k) is None]
    if missing:
        raise MCPError(
            code="invalid_params",
            message=f"missing required argument(s) for {name}: {', '.join(missing)}",
            details={"missing": missing},
        )


# =============================================================================
# Dispatch
# =============================================================================


async def _status(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await coord.status())


async def _build_plugin(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await build_ops.build_plugin(coord.config))


async def _install_plugin(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await build_ops.install_plugin(coord.config))


async def _build_and_install(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await build_ops.build_and_install_plugin(coord.config))


async def _restart(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    res = await coord.recovery.restart()
    return json_result(res.to_dict())


async def _debug_log(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    lines = int(args.get("lines") or 100)
    return text_result(str(log_ops.get_debug_log(coord.config, lines)["log"]))


async def _clear_debug_log(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(log_ops.clear_debug_log(coord.config))


async def _crash_log(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return text_result(log_ops.get_crash_log(coord.state))


async def _build_cli(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await build_ops.build_cli_tool(coord.config))


async def _run_cli(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await media_ops.run_cli_datamosh(coord.config, media_ops.cli_params(args)))


async def _cli_frame(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    source = str(args.get("source") or "output")
    frame = int(args["frame"])
    res = await media_ops.get_cli_frame(coord.config, frame, source)
    if not res.get("success"):
        return json_result(res)
    return ToolResult(
        [
            _text_block(json.dumps({"success": True, "frame": frame, "source": source}, indent=2)),
            _image_block(str(res["image"])),
        ]
    )


async def _compare_cli_frames(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    frame = int(args["frame"])
    res = await media_ops.compare_cli_frames(coord.config, frame)
    blocks = [_text_block(f"Frame {frame} comparison (input vs output):")]
    for key, label in (("input", "Input (original):"), ("output", "Output (moshed):")):
        part = res.get(key) or {}
        if part.get("success"):
            blocks.append(_text_block(label))
            blocks.append(_image_block(str(part["image"])))
        else:
            blocks.append(_text_block(f"{label} {part.get('error') or 'extraction failed'}"))
    return ToolResult(blocks)


async def _analyze(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(await media_ops.analyze_export(coord.config))


async def _read_source(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return text_result(source_ops.read_source_file(coord.config, str(args.get("file") or "")))


async def _edit_source(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    return json_result(
        source_ops.edit_source_file(
            coord.config,
            str(args.get("file") or ""),
            str(args.get("old_text") or ""),
            str(args.get("new_text") if args.get("new_text") is not None else ""),
        )
    )


async def _autonomous_test(coord: Coordinator, args: Dict[str, Any]) -> ToolResult:
    run = await coord.pipeline.run()
    return json_result(run.model_dump())


_LOCAL_HANDLERS: Dict[str, Callable[[Coordinator, Dict[str, Any]], Awaitable[ToolResult]]] = {
    "premiere_status": _status,
    "build_plugin": _build_plugin,
    "install_plugin": _install_plugin,
    "build_and_install_plugin": _build_and_install,
    "restart_premiere": _restart,
    "get_plugin_debug_log": _debug_log,
    "clear_plugin_debug_log": _clear_debug_log,
    "get_last_crash_log": _crash_log,
    "build_cli_tool": _build_cli,
    "run_cli_datamosh": _run_cli,
    "get_cli_frame": _cli_frame,
    "compare_cli_frames": _compare_cli_frames,
    "analyze_premiere_export": _analyze,
    "read_source_file": _read_source,
    "edit_source_file": _edit_source,
    "run_autonomous_test": _autonomous_test,
}


async def handle_tool_call(coord: Coordinator, name: str, arguments: Dict[str, Any]) -> ToolResult:
    """Handle MCP tool call.

    Raises MCPError for unknown tools and missing arguments; BridgeError from the
    channel or capabilities propagates to the caller-facing loop.
    """
    if name not in _TOOLS_BY_NAME:
        raise MCPError(code="unknown_operation", message=f"unknown operation: {name}")
    _check_required(name, arguments)

    if name in REMOTE_TOOLS:
        result = await coord.send(name, arguments)
        return image_aware_result(result)

    return await _LOCAL_HANDLERS[name](coord, arguments)
