"""Advisory cross-process lock that guards a workspace sync.

The lock is a file created with O_CREAT | O_EXCL holding one ISO-8601 UTC
timestamp. A lock older than the staleness threshold is treated as abandoned
and removed before one more acquisition attempt.

This is best-effort, not linearizable: two processes can race between
reading a stale lock and recreating it. The worst outcome is a redundant
sync; the cache file itself is protected by the store's atomic rename.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

from .clock import Clock, age_ms, utc_now
from .config import DEFAULT_LOCK_STALE_MS, ensure_private_dir
from .logging import setup_logging

logger = setup_logging()


class SyncLock:
    def __init__(self, path: Path, stale_after_ms: int = DEFAULT_LOCK_STALE_MS, clock: Clock = utc_now):
        self.path = Path(path)
        self.stale_after_ms = stale_after_ms
        self.clock = clock

    def acquire(self) -> bool:
        """Try to take the lock.

        Returns:
            True if this process now holds the lock, False if another sync
            holds a lock younger than the staleness threshold.
        """
        if self._try_create():
            return True

        age = self.age_ms()
        if age is None:
            # Released between our attempt and the age check.
            return self._try_create()
        if age <= self.stale_after_ms:
            logger.debug({"message": "Sync lock is held by another process", "lock_file": str(self.path), "age_ms": age})
            return False

        logger.warning(
            {
                "message": "Removing stale sync lock",
                "lock_file": str(self.path),
                "age_ms": age,
                "stale_after_ms": self.stale_after_ms,
            }
        )
        self._remove()
        return self._try_create()

    def release(self) -> None:
        """Remove the lock file. Safe to call when it is already gone."""
        self._remove()

    def is_held(self) -> bool:
        return self.path.exists()

    def age_ms(self) -> Optional[int]:
        """Age of the current lock in milliseconds, or None if there is no lock."""
        created = self._read_timestamp()
        if created is None:
            return None
        return age_ms(created, self.clock())

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Acquire for the duration of the block; yields whether it was acquired.

        The lock is released on exit only if this block acquired it.
        """
        acquired = await asyncio.to_thread(self.acquire)
        try:
            yield acquired
        finally:
            if acquired:
                await asyncio.to_thread(self.release)

    def _try_create(self) -> bool:
        ensure_private_dir(self.path.parent)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(self.clock().isoformat())
        return True

    def _read_timestamp(self) -> Optional[datetime]:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return None
        try:
            created = datetime.fromisoformat(token)
        except ValueError:
            # Unreadable token: fall back to the file's modification time.
            return datetime.fromtimestamp(mtime, tz=timezone.utc)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created

    def _remove(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
