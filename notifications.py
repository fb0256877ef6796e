"""
notifications.py — Send async admin notifications from anywhere in the codebase.

Usage:
    import notifications
    notifications.init(app)          # called once in main.py
    await notifications.admin(text)  # missing API key, failed analyses, …
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from telegram.ext import Application

logger = logging.getLogger(__name__)

_app: "Application | None" = None


def init(app: "Application") -> None:
    global _app
    _app = app


async def admin(text: str, parse_mode: str = "MarkdownV2") -> None:
    """Send *text* to every ADMIN_IDS user. Failures are logged, not raised."""
    if _app is None:
        logger.warning("notifications.admin: app not initialised yet")
        return

    import config

    for uid in sorted(config.ADMIN_IDS):
        try:
            await _app.bot.send_message(
                chat_id=uid,
                text=text,
                parse_mode=parse_mode,
                disable_web_page_preview=True,
            )
        except Exception as exc:
            logger.warning("Failed to notify admin %d: %s", uid, exc)
