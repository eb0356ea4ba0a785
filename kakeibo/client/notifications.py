"""Transient user notifications emitted by the request pipeline.

A notifier is any callable taking ``(message, level)`` where level is one of
``info``, ``success``, ``warning`` or ``error``. Front ends plug in their own
toast/banner implementation; the default writes to the log.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

QUEUED_MESSAGE = "オフラインです。オンライン復帰時に同期します。"
SYNCED_MESSAGE = "オフラインデータを同期しました"
DISCARDED_MESSAGE = "同期できなかったオフライン変更{count}件を破棄しました"


def log_notifier(message: str, level: str = "info") -> None:
    logger.log(_LEVELS.get(level, logging.INFO), "notification", extra={"notice": message, "level_name": level})
