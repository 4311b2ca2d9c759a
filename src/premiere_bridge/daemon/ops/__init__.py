"""Capability facade operations.

Leaf operations the tool surface and the pipeline call directly:
- build_ops: plugin and CLI builds, plugin install
- log_ops: plugin debug log, crash logs
- media_ops: offline CLI render, frame extraction, export analysis
- source_ops: read / find-and-replace edit of project source files

Build, log and media failures come back as `{"success": False, "error": ...}` payloads;
source_ops raises CapabilityError, which the tool surface reports as an error payload.
"""

from __future__ import annotations
