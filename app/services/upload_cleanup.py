"""Periodic removal of stale uploaded archives."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from app.config import get_settings
from app.services.session_store import session_store

logger = logging.getLogger(__name__)


def sweep_stale_uploads(
    directory: Path, max_age_seconds: int, now: Optional[float] = None
) -> int:
    """Delete files older than ``max_age_seconds``; returns how many were removed"""
    if not directory.is_dir():
        return 0

    now = now if now is not None else time.time()
    removed = 0
    for path in directory.iterdir():
        try:
            if path.is_file() and now - path.stat().st_mtime > max_age_seconds:
                path.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"Could not remove stale upload {path}: {e}")
    if removed:
        logger.info(f"Removed {removed} stale uploads from {directory}")
    return removed


async def run_cleanup_loop() -> None:
    """Sweep stale uploads and idle sessions every cleanup interval until cancelled"""
    settings = get_settings()
    while True:
        await asyncio.sleep(settings.cleanup_interval_seconds)
        try:
            sweep_stale_uploads(settings.upload_dir, settings.upload_retention_seconds)
            session_store.sweep_idle(settings.upload_retention_seconds)
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
