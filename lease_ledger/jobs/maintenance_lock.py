"""
Maintenance Lock

Cross-process mutual exclusion for the billing maintenance run.

Two mechanisms are tried in order:
1. PostgreSQL session-level advisory lock (pg_try_advisory_lock) held on a
   dedicated connection for the lifetime of the run.
2. A lock file created exclusively, holding the owner's PID. A lock file
   whose PID no longer belongs to a live process is reclaimed.

If neither can be taken the lock reports LockType.NONE and the caller decides
whether to proceed.
"""

import logging
import os
from enum import Enum
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)


class LockType(str, Enum):
    ADVISORY = "advisory"
    FILE = "file"
    NONE = "none"


def hash_lock_name(name: str) -> int:
    """Stable non-negative 32-bit key for an advisory lock name."""
    h = 0
    for ch in name:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but belongs to another user
        return True
    return True


class MaintenanceLock:
    """Advisory lock with a PID lock-file fallback."""

    def __init__(
        self,
        engine: AsyncEngine,
        lock_name: str,
        lock_file: str,
    ):
        self.engine = engine
        self.lock_name = lock_name
        self.lock_key = hash_lock_name(lock_name)
        self.lock_file = lock_file
        self.lock_type = LockType.NONE
        self._connection: Optional[AsyncConnection] = None

    @property
    def acquired(self) -> bool:
        return self.lock_type != LockType.NONE

    async def acquire(self) -> LockType:
        if self.acquired:
            return self.lock_type

        if await self._try_advisory_lock():
            self.lock_type = LockType.ADVISORY
        elif self._try_file_lock():
            self.lock_type = LockType.FILE
        else:
            self.lock_type = LockType.NONE

        return self.lock_type

    async def release(self) -> None:
        """Release whatever was acquired. Safe to call when nothing is held."""
        lock_type, self.lock_type = self.lock_type, LockType.NONE

        if lock_type == LockType.ADVISORY:
            await self._release_advisory_lock()
        elif lock_type == LockType.FILE:
            self._release_file_lock()

    # ==================== ADVISORY LOCK ====================

    async def _try_advisory_lock(self) -> bool:
        if self.engine.dialect.name != "postgresql":
            return False

        conn = None
        try:
            conn = await self.engine.connect()
            result = await conn.execute(
                text("SELECT pg_try_advisory_lock(:key)"),
                {"key": self.lock_key},
            )
            locked = bool(result.scalar())
            # Session-level lock survives the commit
            await conn.commit()
        except Exception as e:
            logger.warning(f"Advisory lock attempt failed: {e}")
            if conn is not None:
                await conn.close()
            return False

        if not locked:
            logger.info(f"Advisory lock {self.lock_key} is held by another session")
            await conn.close()
            return False

        self._connection = conn
        logger.info(f"Acquired advisory lock {self.lock_key} ({self.lock_name})")
        return True

    async def _release_advisory_lock(self) -> None:
        conn, self._connection = self._connection, None
        if conn is None:
            return
        try:
            await conn.execute(
                text("SELECT pg_advisory_unlock(:key)"),
                {"key": self.lock_key},
            )
            await conn.commit()
            logger.info(f"Released advisory lock {self.lock_key}")
        finally:
            await conn.close()

    # ==================== FILE LOCK ====================

    def _try_file_lock(self, reclaim: bool = True) -> bool:
        try:
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if reclaim and self._remove_stale_lock_file():
                return self._try_file_lock(reclaim=False)
            logger.info(f"Lock file {self.lock_file} is held by a running process")
            return False
        except OSError as e:
            logger.warning(f"Could not create lock file {self.lock_file}: {e}")
            return False

        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        logger.info(f"Acquired file lock {self.lock_file}")
        return True

    def _remove_stale_lock_file(self) -> bool:
        """Delete the lock file if its owner is gone. Returns True if removed."""
        try:
            with open(self.lock_file) as f:
                content = f.read().strip()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Could not read lock file {self.lock_file}: {e}")
            return False

        try:
            pid = int(content)
        except ValueError:
            pid = 0

        if is_process_running(pid):
            return False

        logger.warning(f"Removing stale lock file {self.lock_file} (pid {content or '?'})")
        try:
            os.unlink(self.lock_file)
        except FileNotFoundError:
            pass
        return True

    def _release_file_lock(self) -> None:
        try:
            os.unlink(self.lock_file)
            logger.info(f"Released file lock {self.lock_file}")
        except FileNotFoundError:
            logger.warning(f"Lock file {self.lock_file} already removed")
