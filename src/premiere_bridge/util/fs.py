from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(text)
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.unlink(tmp)
        except Exception:
            pass


def read_head_text(path: Path, max_bytes: int) -> str:
    """Read at most `max_bytes` from the start of a file, decoding leniently."""
    with path.open("rb") as f:
        data = f.read(max(0, int(max_bytes)))
    return data.decode("utf-8", errors="replace")


def tail_lines(path: Path, count: int) -> tuple[str, int]:
    """Return the last `count` lines of a text file and its total line count."""
    content = path.read_text(encoding="utf-8", errors="replace")
    all_lines = content.split("\n")
    n = max(0, int(count))
    last = all_lines[-n:] if n else []
    return "\n".join(last), len(all_lines)


def file_size(path: Path) -> int:
    """Size in bytes, or -1 when the file does not exist."""
    try:
        return int(path.stat().st_size)
    except FileNotFoundError:
        return -1
