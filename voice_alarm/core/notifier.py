"""Desktop notifications via notify-send.

Notifications are best effort: when they aren't permitted (config flag) or
notify-send isn't installed, notify() does nothing. It never raises.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)


class Notifier:
    """Shows desktop notifications."""

    def __init__(self, enabled: bool = True, command: str = "notify-send") -> None:
        self.enabled = enabled
        self.command = command

    def is_permitted(self) -> bool:
        """Check whether notifications can be shown."""
        return self.enabled and shutil.which(self.command) is not None

    def notify(self, title: str, body: str) -> bool:
        """Show a notification.

        Returns:
            True if a notification was sent.
        """
        if not self.is_permitted():
            return False

        try:
            result = subprocess.run(
                [self.command, "--app-name=Voice Alarm", "--urgency=critical", title, body],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Notification failed: {e}")
            return False

        if result.returncode != 0:
            logger.warning(f"notify-send exited {result.returncode}: {result.stderr.strip()[:200]}")
            return False
        return True
