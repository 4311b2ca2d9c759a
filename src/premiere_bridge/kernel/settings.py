"""Bridge configuration.

Settings live in <home>/settings.yaml (home: $PREMIERE_BRIDGE_HOME or ~/.premiere-bridge).
Every key is optional; missing or malformed values fall back to the defaults below.
Durations are seconds.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml  # type: ignore

from ..paths import ensure_home
from ..util.fs import atomic_write_text


def _home_path(*parts: str) -> str:
    return str(Path.home().joinpath(*parts))


@dataclass(frozen=True)
class BridgeConfig:
    # Peer endpoint
    ws_host: str = "127.0.0.1"
    ws_port: int = 8847

    # Host application
    host_app_name: str = "Adobe Premiere Pro 2025"
    host_process_pattern: str = "Adobe Premiere Pro"
    test_project_path: str = field(default_factory=lambda: _home_path("Desktop", "mosh_test.prproj"))

    # Channel / liveness
    heartbeat_interval_s: float = 3.0
    request_timeout_s: float = 30.0
    status_timeout_s: float = 5.0
    disconnect_settle_s: float = 1.0
    crash_recency_window_s: float = 60.0
    crash_log_max_bytes: int = 5000
    crash_log_dir: str = field(default_factory=lambda: _home_path("Library", "Logs", "DiagnosticReports"))
    crash_log_suffixes: List[str] = field(default_factory=lambda: [".crash"])

    # Recovery
    kill_settle_s: float = 3.0
    dialog_watch_interval_s: float = 2.0
    ready_poll_interval_s: float = 1.0
    ready_deadline_s: float = 90.0
    peer_poll_interval_s: float = 1.0
    peer_deadline_s: float = 60.0
    osascript_timeout_s: float = 5.0

    # Pipeline
    effect_processing_wait_s: float = 20.0
    export_poll_attempts: int = 60
    export_poll_interval_s: float = 1.0
    export_sample_delay_s: float = 2.0
    analysis_rmse_threshold: float = 1000.0
    analysis_frame_first: int = 10
    analysis_frame_last: int = 40
    analysis_frame_a: int = 15
    analysis_frame_b: int = 30

    # Plugin project
    project_root: str = field(default_factory=lambda: _home_path("coding", "moshbrosh"))
    plugin_name: str = "MoshBrosh"
    plugin_build_dir: str = ""
    plugin_build_command: List[str] = field(
        default_factory=lambda: [
            "xcodebuild",
            "-project",
            "MoshBrosh.xcodeproj",
            "-scheme",
            "MoshBrosh",
            "-configuration",
            "Debug",
        ]
    )
    plugin_build_timeout_s: float = 600.0
    plugin_products_glob: str = field(
        default_factory=lambda: _home_path(
            "Library", "Developer", "Xcode", "DerivedData", "MoshBrosh-*", "Build", "Products", "Debug", "MoshBrosh.plugin"
        )
    )
    plugin_install_dir: str = field(
        default_factory=lambda: _home_path(
            "Library", "Application Support", "Adobe", "Common", "Plug-ins", "7.0", "MediaCore"
        )
    )
    plugin_debug_log: str = field(default_factory=lambda: _home_path("Desktop", "moshbrosh_debug.log"))

    # Offline CLI build of the effect
    cli_tool_dir: str = ""
    cli_tool_name: str = "moshbrosh"
    cli_timeout_s: float = 120.0
    test_video_name: str = "test_input.mp4"
    cli_output_name: str = "test_output_mcp.mp4"
    export_output_name: str = "premiere_export.mp4"
    ffmpeg_timeout_s: float = 30.0

    @property
    def build_dir(self) -> Path:
        if self.plugin_build_dir:
            return Path(self.plugin_build_dir).expanduser()
        return Path(self.project_root).expanduser() / self.plugin_name / "Mac"

    @property
    def cli_dir(self) -> Path:
        if self.cli_tool_dir:
            return Path(self.cli_tool_dir).expanduser()
        return Path(self.project_root).expanduser() / self.plugin_name / "CLI"

    @property
    def cli_tool_path(self) -> Path:
        return self.cli_dir / self.cli_tool_name

    @property
    def test_video_path(self) -> Path:
        return self.cli_dir / self.test_video_name

    @property
    def cli_output_path(self) -> Path:
        return self.cli_dir / self.cli_output_name

    @property
    def export_output_path(self) -> Path:
        return self.cli_dir / self.export_output_name

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def _coerce(raw: Any, default: Any) -> Any:
    """Coerce a YAML value to the type of its default; None means "use default"."""
    if raw is None:
        return default
    try:
        if isinstance(default, bool):
            if isinstance(raw, str):
                return raw.strip().lower() in ("1", "true", "yes", "on")
            return bool(raw)
        if isinstance(default, int):
            return max(0, int(raw))
        if isinstance(default, float):
            return max(0.0, float(raw))
        if isinstance(default, list):
            if isinstance(raw, (list, tuple)):
                return [str(x) for x in raw]
            return default
        return str(raw)
    except (TypeError, ValueError):
        return default


def config_from_dict(doc: Dict[str, Any]) -> BridgeConfig:
    base = BridgeConfig()
    values: Dict[str, Any] = {}
    for f in dataclasses.fields(BridgeConfig):
        if f.name in doc:
            values[f.name] = _coerce(doc.get(f.name), getattr(base, f.name))
    return dataclasses.replace(base, **values)


def _settings_path() -> Path:
    return ensure_home() / "settings.yaml"


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the raw settings document (empty when absent or unreadable)."""
    p = path or _settings_path()
    if not p.exists():
        return {}
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        return doc if isinstance(doc, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    return config_from_dict(load_settings(path))


def save_config(cfg: BridgeConfig, path: Optional[Path] = None) -> Path:
    p = path or _settings_path()
    atomic_write_text(p, yaml.safe_dump(cfg.to_dict(), allow_unicode=True, sort_keys=False))
    return p
