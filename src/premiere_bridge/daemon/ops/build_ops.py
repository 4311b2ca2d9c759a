"""Plugin and CLI build/install operations."""
from __future__ import annotations

import asyncio
import glob
import os
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...host.shell import run_command
from ...kernel.settings import BridgeConfig

_ERROR_LINE = re.compile(r"error:.*")


def _newest_build_product(pattern: str) -> Optional[Path]:
    matches = [Path(p) for p in glob.glob(os.path.expanduser(pattern))]
    matches = [p for p in matches if p.exists()]
    if not matches:
        return None
    return max(matches, key=lambda p: p.stat().st_mtime)


async def build_plugin(cfg: BridgeConfig) -> Dict[str, Any]:
    res = await run_command(cfg.plugin_build_command, cwd=cfg.build_dir, timeout_s=cfg.plugin_build_timeout_s)
    output = res.output
    success = "BUILD SUCCEEDED" in output
    errors: List[str] = [] if success else _ERROR_LINE.findall(output)
    if not success and res.error:
        errors.append(res.error)
    return {"success": success, "output": output[-3000:], "errors": errors}


def _install_sync(cfg: BridgeConfig) -> Dict[str, Any]:
    product = _newest_build_product(cfg.plugin_products_glob)
    if product is None:
        return {"success": False, "error": f"no built plugin matches {cfg.plugin_products_glob}"}
    install_dir = Path(cfg.plugin_install_dir).expanduser()
    target = install_dir / product.name
    try:
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        install_dir.mkdir(parents=True, exist_ok=True)
        if product.is_dir():
            shutil.copytree(product, target, symlinks=True)
        else:
            shutil.copy2(product, target)
    except OSError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "source": str(product), "installed": str(target)}


async def install_plugin(cfg: BridgeConfig) -> Dict[str, Any]:
    return await asyncio.to_thread(_install_sync, cfg)


async def build_and_install_plugin(cfg: BridgeConfig) -> Dict[str, Any]:
    build = await build_plugin(cfg)
    if not build.get("success"):
        return {**build, "success": False, "stage": "build"}
    install = await install_plugin(cfg)
    return {"success": bool(install.get("success")), "build": build, "install": install}


async def build_cli_tool(cfg: BridgeConfig) -> Dict[str, Any]:
    clean = await run_command(["make", "clean"], cwd=cfg.cli_dir, timeout_s=cfg.plugin_build_timeout_s)
    make = await run_command(["make"], cwd=cfg.cli_dir, timeout_s=cfg.plugin_build_timeout_s)
    success = cfg.cli_tool_path.exists()
    error = make.error or (None if make.ok else f"make exited with {make.returncode}")
    return {"success": success, "output": clean.output + make.output, "error": error}
