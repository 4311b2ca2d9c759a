"""
premiere-bridge MCP server: stdio loop

Runs inside the coordinator's event loop (see `daemon.server.serve`); each
tools/call request runs as its own task so a slow tool (restart, pipeline)
never blocks status queries.

Usage:
    premiere-bridge serve
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Callable, Dict, Optional, Set, TextIO

from ... import __version__
from ...daemon.server import Coordinator
from ...errors import BridgeError
from .server import MCP_TOOLS, MCPError, handle_tool_call

logger = logging.getLogger("premiere_bridge.mcp")

PROTOCOL_VERSION = "2024-11-05"


def _parse_message(line: str) -> Optional[Dict[str, Any]]:
    try:
        msg = json.loads(line.strip())
    except ValueError:
        return None
    return msg if isinstance(msg, dict) else None


def _write_message(stream: TextIO, msg: Dict[str, Any]) -> None:
    stream.write(json.dumps(msg, ensure_ascii=False) + "\n")
    stream.flush()


def _make_response(id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _make_error(id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def _error_content(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    err: Dict[str, Any] = {"code": code, "message": message}
    if details:
        err["details"] = details
    return {
        "content": [{"type": "text", "text": json.dumps({"error": err}, ensure_ascii=False, indent=2)}],
        "isError": True,
    }


def _initialize_result() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        # Some clients probe resources/prompts even when unused.
        "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
        "serverInfo": {"name": "premiere-bridge", "version": __version__},
    }


# Methods answered without touching the coordinator.
_STATIC_METHODS: Dict[str, Callable[[], Dict[str, Any]]] = {
    "initialize": _initialize_result,
    "tools/list": lambda: {"tools": MCP_TOOLS},
    "resources/list": lambda: {"resources": []},
    "prompts/list": lambda: {"prompts": []},
    "ping": dict,
    "logging/setLevel": dict,
}


async def handle_request(coord: Coordinator, req: Dict[str, Any]) -> Dict[str, Any]:
    """Handle one MCP JSON-RPC request; notifications return {}."""
    req_id = req.get("id")
    method = str(req.get("method") or "")
    params = req.get("params")
    if not isinstance(params, dict):
        params = {}

    if method.startswith("notifications/"):
        return {}

    static = _STATIC_METHODS.get(method)
    if static is not None:
        return _make_response(req_id, static())

    if method == "tools/call":
        tool_name = str(params.get("name") or "")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            arguments = {}

        try:
            result = await handle_tool_call(coord, tool_name, arguments)
            return _make_response(req_id, result.to_mcp())
        except (MCPError, BridgeError) as e:
            return _make_response(req_id, _error_content(e.code, e.message, e.details))
        except Exception as e:
            logger.exception(f"[mcp] tool {tool_name} failed")
            return _make_response(req_id, {
                "content": [{"type": "text", "text": f"Error: {e}"}],
                "isError": True,
            })

    return _make_error(req_id, -32601, f"Method not found: {method}")


async def _serve_line(coord: Coordinator, line: str, stdout: TextIO) -> None:
    msg = _parse_message(line)
    if msg is None:
        logger.warning("[mcp] dropping malformed request line")
        _write_message(stdout, _make_error(None, -32700, "Parse error"))
        return
    try:
        resp = await handle_request(coord, msg)
    except Exception as e:
        logger.exception("[mcp] request handling failed")
        resp = _make_error(msg.get("id"), -32603, f"Internal error: {e}")
    if resp:
        _write_message(stdout, resp)


async def run_stdio(
    coord: Coordinator,
    *,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """MCP main loop (stdio mode). Returns when stdin reaches EOF."""
    src = stdin or sys.stdin
    dst = stdout or sys.stdout
    inflight: Set[asyncio.Task] = set()

    while True:
        line = await asyncio.to_thread(src.readline)
        if not line:
            break
        if not line.strip():
            continue
        task = asyncio.create_task(_serve_line(coord, line, dst))
        inflight.add(task)
        task.add_done_callback(inflight.discard)

    if inflight:
        await asyncio.gather(*inflight, return_exceptions=True)
    logger.info("[mcp] stdin closed")
    return 0
