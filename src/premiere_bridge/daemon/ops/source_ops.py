from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ...errors import CapabilityError
from ...kernel.settings import BridgeConfig


def resolve_source_path(cfg: BridgeConfig, rel: str) -> Path:
    """Resolve a project-relative path; anything escaping the project root is rejected."""
    root = Path(cfg.project_root).expanduser().resolve()
    rel = str(rel or "").strip()
    if not rel:
        raise CapabilityError("missing file path", code="invalid_path")
    target = (root / rel).resolve()
    if target != root and root not in target.parents:
        raise CapabilityError(f"path escapes project root: {rel}", code="invalid_path")
    return target


def read_source_file(cfg: BridgeConfig, rel: str) -> str:
    path = resolve_source_path(cfg, rel)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise CapabilityError(f"Error reading file: {e}", code="read_failed") from e


def edit_source_file(cfg: BridgeConfig, rel: str, old_text: str, new_text: str) -> Dict[str, Any]:
    """Replace the first occurrence of `old_text`."""
    path = resolve_source_path(cfg, rel)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CapabilityError(f"Error editing file: {e}", code="read_failed") from e
    if not old_text or old_text not in content:
        raise CapabilityError("old_text not found in file", code="old_text_not_found", details={"file": rel})
    try:
        path.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
    except OSError as e:
        raise CapabilityError(f"Error editing file: {e}", code="write_failed") from e
    return {"success": True, "file": rel}
