from __future__ import annotations

import argparse
import dataclasses
import json
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .kernel.settings import BridgeConfig, load_config, save_config
from .util.obslog import setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _load(args: argparse.Namespace) -> BridgeConfig:
    path = Path(args.config).expanduser() if getattr(args, "config", "") else None
    return load_config(path)


def cmd_serve(args: argparse.Namespace) -> int:
    from .daemon.server import serve_forever

    cfg = _load(args)
    overrides = {}
    if args.host:
        overrides["ws_host"] = args.host
    if args.port:
        overrides["ws_port"] = int(args.port)
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)
    setup_root_json_logging(component="premiere-bridge", level=args.log_level)
    return serve_forever(cfg, log_level=str(args.log_level or "warning").lower())


def cmd_tools(_: argparse.Namespace) -> int:
    from .ports.mcp.server import MCP_TOOLS

    _print_json({"ok": True, "result": {"tools": [{"name": t["name"], "description": t["description"]} for t in MCP_TOOLS]}})
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    cfg = _load(args)
    if args.write:
        path = save_config(cfg, Path(args.config).expanduser() if args.config else None)
        _print_json({"ok": True, "result": {"path": str(path)}})
        return 0
    _print_json({"ok": True, "result": cfg.to_dict()})
    return 0


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="premiere-bridge", description="Premiere Pro automation bridge (MCP stdio + CEP panel WebSocket)")
    p.add_argument("--config", default="", help="Path to settings.yaml (default: $PREMIERE_BRIDGE_HOME/settings.yaml)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the coordinator: panel WebSocket endpoint + MCP over stdio")
    p_serve.add_argument("--host", default="", help="WebSocket bind host (default from settings)")
    p_serve.add_argument("--port", type=int, default=0, help="WebSocket port (default from settings)")
    p_serve.add_argument("--log-level", default="INFO", help="Log level for stderr JSONL logs (default: INFO)")
    p_serve.set_defaults(func=cmd_serve)

    p_tools = sub.add_parser("tools", help="List the MCP tool catalog")
    p_tools.set_defaults(func=cmd_tools)

    p_config = sub.add_parser("config", help="Show the effective configuration")
    p_config.add_argument("--write", action="store_true", help="Write the effective configuration back to settings.yaml")
    p_config.set_defaults(func=cmd_config)

    p_version = sub.add_parser("version", help="Show version")
    p_version.set_defaults(func=cmd_version)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
