"""Tests for the maintenance lock."""

import os
from unittest.mock import patch

import pytest

from lease_ledger.jobs.maintenance_lock import (
    LockType,
    MaintenanceLock,
    hash_lock_name,
    is_process_running,
)


class TestHashLockName:
    def test_small_values(self) -> None:
        assert hash_lock_name("") == 0
        assert hash_lock_name("a") == 97
        assert hash_lock_name("ab") == 97 * 31 + 98

    def test_stable_and_in_range(self) -> None:
        key = hash_lock_name("daily_billing_maintenance_lock")
        assert key == hash_lock_name("daily_billing_maintenance_lock")
        assert 0 <= key <= 2 ** 31

    def test_distinct_names(self) -> None:
        assert hash_lock_name("lock_a") != hash_lock_name("lock_b")


class TestIsProcessRunning:
    def test_current_process(self) -> None:
        assert is_process_running(os.getpid())

    def test_invalid_pid(self) -> None:
        assert not is_process_running(0)
        assert not is_process_running(-5)

    def test_missing_process(self) -> None:
        with patch("lease_ledger.jobs.maintenance_lock.os.kill", side_effect=ProcessLookupError):
            assert not is_process_running(123456)

    def test_other_users_process(self) -> None:
        with patch("lease_ledger.jobs.maintenance_lock.os.kill", side_effect=PermissionError):
            assert is_process_running(1)


@pytest.mark.asyncio
class TestFileLock:
    """Advisory locks are PostgreSQL only; SQLite falls back to the lock file."""

    async def test_acquire_writes_pid(self, engine, tmp_path) -> None:
        path = tmp_path / ".maintenance.lock"
        lock = MaintenanceLock(engine, "test_lock", str(path))

        assert await lock.acquire() == LockType.FILE
        assert lock.acquired
        assert path.read_text() == str(os.getpid())

        await lock.release()
        assert not path.exists()
        assert lock.lock_type == LockType.NONE

    async def test_advisory_lock_skipped_off_postgres(self, engine, tmp_path) -> None:
        lock = MaintenanceLock(engine, "test_lock", str(tmp_path / ".maintenance.lock"))

        assert engine.dialect.name == "sqlite"
        assert await lock._try_advisory_lock() is False
        assert lock._connection is None

    async def test_second_holder_is_refused(self, engine, tmp_path) -> None:
        path = str(tmp_path / ".maintenance.lock")
        first = MaintenanceLock(engine, "test_lock", path)
        second = MaintenanceLock(engine, "test_lock", path)

        assert await first.acquire() == LockType.FILE
        assert await second.acquire() == LockType.NONE

        await second.release()
        assert os.path.exists(path)
        await first.release()
        assert await second.acquire() == LockType.FILE
        await second.release()

    async def test_stale_lock_file_is_reclaimed(self, engine, tmp_path) -> None:
        path = tmp_path / ".maintenance.lock"
        path.write_text("999999")
        lock = MaintenanceLock(engine, "test_lock", str(path))

        with patch("lease_ledger.jobs.maintenance_lock.is_process_running", return_value=False):
            assert await lock.acquire() == LockType.FILE

        assert path.read_text() == str(os.getpid())
        await lock.release()

    async def test_unreadable_pid_is_treated_as_stale(self, engine, tmp_path) -> None:
        path = tmp_path / ".maintenance.lock"
        path.write_text("not-a-pid")
        lock = MaintenanceLock(engine, "test_lock", str(path))

        assert await lock.acquire() == LockType.FILE
        await lock.release()

    async def test_release_without_acquire(self, engine, tmp_path) -> None:
        lock = MaintenanceLock(engine, "test_lock", str(tmp_path / "missing.lock"))
        await lock.release()
        assert lock.lock_type == LockType.NONE

    async def test_unwritable_location(self, engine, tmp_path) -> None:
        lock = MaintenanceLock(engine, "test_lock", str(tmp_path / "no-such-dir" / "x.lock"))
        assert await lock.acquire() == LockType.NONE
