"""UI automation for the crash reporter and the host's recovery dialogs (macOS System Events).

Every call reports a boolean and never raises: a failed script means "nothing dismissed".
"""
from __future__ import annotations

import logging

from .shell import run_command

logger = logging.getLogger("premiere_bridge.dialogs")


_CRASH_REPORTER_SCRIPT = """
tell application "System Events"
  set foundDialog to false
  repeat with proc in (every process whose name contains "UserNotification" or name contains "Problem Report" or name contains "crash")
    try
      set foundDialog to true
      tell proc
        try
          click button "Ignore" of window 1
        on error
          try
            click button "Don't Send" of window 1
          on error
            try
              click button "OK" of window 1
            end try
          end try
        end try
      end tell
    end try
  end repeat
  return foundDialog
end tell
"""

_RECOVERY_DIALOG_SCRIPT = """
tell application "System Events"
  tell process "{app}"
    set foundDialog to false
    try
      repeat with w in (every window)
        if (name of w contains "quit unexpectedly" or name of w contains "Recover") then
          set foundDialog to true
          repeat with b in (every button of w)
            set btnName to name of b
            if btnName contains "Don't" or btnName contains "Cancel" or btnName contains "No" then
              click b
              return true
            end if
          end repeat
          key code 53
          return true
        end if
      end repeat
      repeat with w in (every window)
        repeat with s in (every sheet of w)
          set foundDialog to true
          repeat with b in (every button of s)
            set btnName to name of b
            if btnName contains "Don't" or btnName contains "Cancel" or btnName contains "No" then
              click b
              return true
            end if
          end repeat
        end repeat
      end repeat
    end try
    return foundDialog
  end tell
end tell
"""

_MODAL_COUNT_SCRIPT = """
tell application "System Events"
  tell process "{app}"
    set dialogCount to 0
    repeat with w in (every window)
      if subrole of w is "AXDialog" or subrole of w is "AXSystemDialog" then
        set dialogCount to dialogCount + 1
      end if
      set dialogCount to dialogCount + (count of sheets of w)
    end repeat
    return dialogCount
  end tell
end tell
"""

_MAIN_WINDOW_SCRIPT = """
tell application "System Events"
  tell process "{app}"
    return (count of windows) > 0
  end tell
end tell
"""


class DialogAutomation:
    def __init__(self, app_name: str, *, timeout_s: float = 5.0) -> None:
        self._app = app_name
        self._timeout_s = timeout_s

    async def _osascript(self, script: str) -> str:
        res = await run_command(["osascript", "-e", script], timeout_s=self._timeout_s)
        if not res.ok:
            return ""
        return res.stdout.strip()

    async def dismiss_crash_reporter(self) -> bool:
        return await self._osascript(_CRASH_REPORTER_SCRIPT) == "true"

    async def dismiss_recovery_dialog(self) -> bool:
        return await self._osascript(_RECOVERY_DIALOG_SCRIPT.replace("{app}", self._app)) == "true"

    async def has_modal_dialog(self) -> bool:
        out = await self._osascript(_MODAL_COUNT_SCRIPT.replace("{app}", self._app))
        try:
            return int(out) > 0
        except ValueError:
            return False

    async def main_window_ready(self) -> bool:
        return await self._osascript(_MAIN_WINDOW_SCRIPT.replace("{app}", self._app)) == "true"
