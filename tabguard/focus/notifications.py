"""
Notification sink — platform-aware desktop notifications for focus events.

Delivery is fire-and-forget: failures are logged and never reach the caller.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, title: str, message: str) -> None: ...


class LogNotifier:
    """Writes notifications to the log only (headless / test runs)."""

    def notify(self, title: str, message: str) -> None:
        logger.info("%s: %s", title, message)


class DesktopNotifier:

    def __init__(self, app_name: str = "TabGuard"):
        self.app_name = app_name

    def notify(self, title: str, message: str) -> None:
        title = f"{self.app_name} - {title}"
        if sys.platform == "win32":
            ok = self._windows_toast(title, message)
        elif sys.platform == "darwin":
            ok = self._macos_notification(title, message)
        else:
            ok = self._linux_notify_send(title, message)
        if not ok:
            logger.warning("Could not deliver notification %r", title)

    # ------------------------------------------------------------------
    # Platform implementations
    # ------------------------------------------------------------------

    def _windows_toast(self, title: str, message: str) -> bool:
        script = (
            "[void][System.Reflection.Assembly]::LoadWithPartialName('System.Windows.Forms');"
            "$n = New-Object System.Windows.Forms.NotifyIcon;"
            "$n.Icon = [System.Drawing.SystemIcons]::Information;"
            "$n.Visible = $true;"
            f"$n.ShowBalloonTip(5000, {_ps_quote(title)}, {_ps_quote(message)}, 'Info')"
        )
        return self._run(["powershell", "-NoProfile", "-Command", script])

    def _macos_notification(self, title: str, message: str) -> bool:
        script = f"display notification {_as_quote(message)} with title {_as_quote(title)}"
        return self._run(["osascript", "-e", script])

    def _linux_notify_send(self, title: str, message: str) -> bool:
        return self._run(["notify-send", "--app-name", self.app_name, title, message])

    @staticmethod
    def _run(cmd: list[str]) -> bool:
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Notifier command %s failed: %s", cmd[0], exc)
            return False


def _ps_quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _as_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
