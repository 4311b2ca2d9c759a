from __future__ import annotations

import os
from pathlib import Path


def bridge_home() -> Path:
    env = os.environ.get("PREMIERE_BRIDGE_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".premiere-bridge").resolve()


def ensure_home() -> Path:
    home = bridge_home()
    home.mkdir(parents=True, exist_ok=True)
    return home
