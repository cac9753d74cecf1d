"""User-visible notices for Melodia (desktop notifications plus the log)."""

import shutil
import subprocess
from typing import Literal

from loguru import logger

_enabled = True


def configure_notifications(enabled: bool) -> None:
    """Turn desktop notifications on or off (notices are always logged)."""
    global _enabled
    _enabled = enabled


def notify(
    title: str, message: str, urgency: Literal["low", "normal", "critical"] = "normal"
) -> None:
    """
    Show a desktop notification using notify-send.

    Args:
        title: Notification title
        message: Notification message body
        urgency: Urgency level ('low', 'normal', 'critical')

    Note:
        Silently skips the notification if notify-send is not available.
    """
    if not _enabled or not shutil.which("notify-send"):
        return

    try:
        subprocess.run(
            [
                "notify-send",
                "--urgency",
                urgency,
                "--app-name",
                "Melodia",
                title,
                message,
            ],
            check=False,
            timeout=2.0,
            capture_output=True,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"notify-send failed: {e}")


def notify_error(message: str) -> None:
    """Show an error notice with X mark."""
    logger.error(message)
    notify("✗ Melodia", message, urgency="critical")
