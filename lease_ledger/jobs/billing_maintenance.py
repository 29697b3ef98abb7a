"""
Daily Billing Maintenance

Keeps bill and payment-order state consistent with the passage of time:

    overdue_updates        UNPAID bills past their due date -> OVERDUE
    penalty_updates        recompute penalties of OVERDUE bills (paged)
    order_expirations      GENERATED orders past expires_at -> EXPIRED
    order_recalculations   re-total live GENERATED orders from current bills

Runs are single-flight: an in-process state guard plus a cross-process
MaintenanceLock. Each task is isolated; a failing task is recorded in the
run metrics and the remaining tasks still run. PAID bills are excluded by
every filter, so maintenance never touches settled debt.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from lease_ledger.config import Settings, settings as app_settings
from lease_ledger.core.dates import ZERO, ensure_utc, to_decimal, utcnow
from lease_ledger.core.exceptions import MaintenanceAlreadyRunning, LockUnavailable
from lease_ledger.jobs.maintenance_lock import LockType, MaintenanceLock
from lease_ledger.models.billing import BillingRecord, PaymentStatus
from lease_ledger.models.payment_order import OrderBillItem, OrderStatus, PaymentOrder
from lease_ledger.schemas.maintenance import MaintenanceMetrics, TaskFailure, TaskResult
from lease_ledger.services.penalty_calculator import PenaltyCalculator

logger = logging.getLogger(__name__)

PENALTY_REFRESH_INTERVAL = timedelta(hours=24)


class RunState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING_LOCK = "ACQUIRING_LOCK"
    LOCK_ACQUIRED = "LOCK_ACQUIRED"
    LOCK_FAILED = "LOCK_FAILED"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class MaintenanceTask:
    name: str
    run: Callable[[datetime], Awaitable[TaskResult]]


@dataclass
class PageOutcome:
    fetched: int
    processed: int = 0
    failed: int = 0
    last_key: Any = None


async def process_in_batches(
    process_page: Callable[[Any], Awaitable[PageOutcome]],
    batch_size: int,
    operation_name: str,
    delay_seconds: float = 0,
    page_timeout: Optional[float] = None,
) -> PageOutcome:
    """
    Drive keyset pagination until a short page is returned.

    process_page receives the last key of the previous page (None first)
    and must commit its own page.
    """
    totals = PageOutcome(fetched=0)
    last_key = None
    batch_number = 0

    while True:
        batch_number += 1
        page = await asyncio.wait_for(process_page(last_key), timeout=page_timeout)

        totals.fetched += page.fetched
        totals.processed += page.processed
        totals.failed += page.failed

        if page.fetched:
            logger.debug(
                f"{operation_name} batch {batch_number}: "
                f"{page.processed} updated, {page.failed} failed of {page.fetched}"
            )

        if page.fetched < batch_size:
            break

        last_key = page.last_key
        if delay_seconds:
            await asyncio.sleep(delay_seconds)

    return totals


class BillingMaintenanceRunner:
    """Owns run state and executes the maintenance tasks."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        engine: AsyncEngine,
        config: Optional[Settings] = None,
        lock_factory: Optional[Callable[[], MaintenanceLock]] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.config = config or app_settings
        self.lock_factory = lock_factory or self._default_lock
        self.state = RunState.IDLE
        self.last_metrics: Optional[MaintenanceMetrics] = None

    def _default_lock(self) -> MaintenanceLock:
        return MaintenanceLock(
            self.engine,
            lock_name=self.config.MAINTENANCE_LOCK_NAME,
            lock_file=self.config.MAINTENANCE_LOCK_FILE,
        )

    @property
    def is_running(self) -> bool:
        return self.state != RunState.IDLE

    def tasks(self) -> List[MaintenanceTask]:
        return [
            MaintenanceTask("overdue_updates", self.update_overdue_bills),
            MaintenanceTask("penalty_updates", self.update_penalty_amounts),
            MaintenanceTask("order_expirations", self.expire_old_orders),
            MaintenanceTask("order_recalculations", self.recalculate_order_totals),
        ]

    async def run_maintenance(self, now: Optional[datetime] = None) -> MaintenanceMetrics:
        """
        Run every maintenance task once.

        Raises:
            MaintenanceAlreadyRunning: A run is already in progress in this process
            LockUnavailable: No lock could be taken and unlocked runs are not allowed
        """
        if self.state != RunState.IDLE:
            logger.warning("Maintenance already running, skipping this trigger")
            raise MaintenanceAlreadyRunning()

        self.state = RunState.ACQUIRING_LOCK
        now = ensure_utc(now) if now else utcnow()
        started = time.monotonic()
        metrics = MaintenanceMetrics(started_at=now)
        lock = self.lock_factory()

        try:
            lock_type = await lock.acquire()
            if lock_type == LockType.NONE:
                self.state = RunState.LOCK_FAILED
                if not self.config.allow_unlocked_maintenance:
                    logger.error("Could not acquire maintenance lock, aborting run")
                    raise LockUnavailable()
                logger.warning("Could not acquire maintenance lock, proceeding without lock")
            else:
                self.state = RunState.LOCK_ACQUIRED
            metrics.lock_type = lock_type.value

            self.state = RunState.RUNNING
            logger.info(f"Starting billing maintenance (lock: {lock_type.value})")

            for task in self.tasks():
                await self._run_task(task, now, metrics)

            metrics.finished_at = utcnow()
            metrics.duration_ms = int((time.monotonic() - started) * 1000)
            self.last_metrics = metrics

            summary = ", ".join(f"{name}={r.processed}" for name, r in metrics.tasks.items())
            fields = {
                "lock_type": metrics.lock_type,
                "duration_ms": metrics.duration_ms,
                "processed": {name: r.processed for name, r in metrics.tasks.items()},
                "errors": len(metrics.errors),
            }
            if metrics.errors:
                logger.warning(
                    f"Billing maintenance finished with {len(metrics.errors)} error(s) "
                    f"in {metrics.duration_ms}ms: {summary}",
                    extra={"fields": fields},
                )
            else:
                logger.info(
                    f"Billing maintenance completed in {metrics.duration_ms}ms: {summary}",
                    extra={"fields": fields},
                )
            return metrics
        finally:
            try:
                await lock.release()
            except Exception as e:
                logger.error(f"Failed to release maintenance lock: {e}")
            self.state = RunState.IDLE

    async def _run_task(self, task: MaintenanceTask, now: datetime, metrics: MaintenanceMetrics) -> None:
        started = time.monotonic()
        try:
            result = await task.run(now)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Maintenance task {task.name} failed: {error}")
            metrics.errors.append(TaskFailure(task=task.name, error=error, timestamp=utcnow()))
            result = TaskResult(task=task.name, success=False)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        metrics.tasks[task.name] = result

    # ==================== TASKS ====================

    async def update_overdue_bills(self, now: datetime) -> TaskResult:
        async def _update() -> int:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(BillingRecord)
                        .where(
                            BillingRecord.payment_status == PaymentStatus.UNPAID.value,
                            BillingRecord.is_deleted.is_(False),
                            BillingRecord.due_date < now,
                            BillingRecord.remaining_amount > 0,
                        )
                        .values(payment_status=PaymentStatus.OVERDUE.value, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                return result.rowcount or 0

        updated = await asyncio.wait_for(_update(), timeout=self.config.BULK_UPDATE_TIMEOUT_SECONDS)
        logger.info(f"Marked {updated} bill(s) OVERDUE")
        return TaskResult(task="overdue_updates", processed=updated)

    async def update_penalty_amounts(self, now: datetime) -> TaskResult:
        batch_size = self.config.PENALTY_BATCH_SIZE
        stale_before = now - PENALTY_REFRESH_INTERVAL

        async def _page(after_id) -> PageOutcome:
            async with self.session_factory() as session:
                async with session.begin():
                    stmt = select(BillingRecord).where(
                        BillingRecord.payment_status == PaymentStatus.OVERDUE.value,
                        BillingRecord.is_deleted.is_(False),
                        or_(
                            BillingRecord.penalty_amount == 0,
                            BillingRecord.updated_at < stale_before,
                        ),
                    )
                    if after_id is not None:
                        stmt = stmt.where(BillingRecord.bill_id > after_id)
                    stmt = stmt.order_by(BillingRecord.bill_id).limit(batch_size)

                    bills = (await session.execute(stmt)).scalars().all()
                    page = PageOutcome(fetched=len(bills))
                    if not bills:
                        return page
                    page.last_key = bills[-1].bill_id

                    calculator = PenaltyCalculator(session)
                    for bill in bills:
                        if await self._refresh_penalty(calculator, bill, now):
                            page.processed += 1
                    return page

        totals = await process_in_batches(
            _page,
            batch_size=batch_size,
            operation_name="penalty_updates",
            delay_seconds=self.config.BATCH_DELAY_SECONDS,
            page_timeout=self.config.PAGE_TRANSACTION_TIMEOUT_SECONDS,
        )
        logger.info(f"Updated penalties on {totals.processed} of {totals.fetched} overdue bill(s)")
        return TaskResult(task="penalty_updates", processed=totals.processed, failed=totals.failed)

    async def _refresh_penalty(self, calculator: PenaltyCalculator, bill: BillingRecord, now: datetime) -> bool:
        if bill.due_date is None:
            return False

        principal = to_decimal(bill.base_payment) + to_decimal(bill.interest_amount)
        result = await calculator.calculate_penalty(principal, bill.due_date, now)
        current = to_decimal(bill.penalty_amount)

        # Never lower a stored penalty: amount_due only grows until paid
        if result.penalty <= ZERO or result.penalty < current:
            return False

        bill.penalty_amount = result.penalty
        bill.penalty_rate_used = result.rate_used
        bill.amount_due = principal + result.penalty
        bill.updated_at = now
        return True

    async def expire_old_orders(self, now: datetime) -> TaskResult:
        async def _expire() -> int:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(PaymentOrder)
                        .where(
                            PaymentOrder.status == OrderStatus.GENERATED.value,
                            PaymentOrder.expires_at < now,
                        )
                        .values(status=OrderStatus.EXPIRED.value, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                return result.rowcount or 0

        expired = await asyncio.wait_for(_expire(), timeout=self.config.ORDER_EXPIRY_TIMEOUT_SECONDS)
        logger.info(f"Expired {expired} payment order(s)")
        return TaskResult(task="order_expirations", processed=expired)

    async def recalculate_order_totals(self, now: datetime) -> TaskResult:
        batch_size = self.config.ORDER_BATCH_SIZE

        async def _page(after_number) -> PageOutcome:
            async with self.session_factory() as session:
                stmt = select(PaymentOrder.order_number).where(
                    PaymentOrder.status == OrderStatus.GENERATED.value,
                    PaymentOrder.expires_at > now,
                )
                if after_number is not None:
                    stmt = stmt.where(PaymentOrder.order_number > after_number)
                stmt = stmt.order_by(PaymentOrder.order_number).limit(batch_size)
                order_numbers = (await session.execute(stmt)).scalars().all()

            page = PageOutcome(fetched=len(order_numbers))
            if order_numbers:
                page.last_key = order_numbers[-1]

            for order_number in order_numbers:
                try:
                    recalculated = await asyncio.wait_for(
                        self._recalculate_order(order_number, now),
                        timeout=self.config.ORDER_TRANSACTION_TIMEOUT_SECONDS,
                    )
                except Exception as e:
                    logger.error(f"Failed to recalculate order {order_number}: {e}")
                    page.failed += 1
                    continue
                if recalculated:
                    page.processed += 1
            return page

        totals = await process_in_batches(
            _page,
            batch_size=batch_size,
            operation_name="order_recalculations",
            delay_seconds=self.config.BATCH_DELAY_SECONDS,
        )
        logger.info(
            f"Recalculated {totals.processed} payment order(s), {totals.failed} failed"
        )
        return TaskResult(task="order_recalculations", processed=totals.processed, failed=totals.failed)

    async def _recalculate_order(self, order_number: str, now: datetime) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                order = await self._load_order(session, order_number)
                if order is None or not order.bill_items:
                    return False
                # Paid or expired since the page was read
                if order.status != OrderStatus.GENERATED.value or ensure_utc(order.expires_at) <= now:
                    return False

                total = ZERO
                for item in order.bill_items:
                    amount = to_decimal(item.bill.amount_due) if item.bill else to_decimal(item.amount)
                    item.amount = amount
                    total += amount

                order.current_calculated_total = total
                order.last_recalculated_at = now
                order.updated_at = now
                return True

    @staticmethod
    async def _load_order(session: AsyncSession, order_number: str) -> Optional[PaymentOrder]:
        result = await session.execute(
            select(PaymentOrder)
            .options(selectinload(PaymentOrder.bill_items).selectinload(OrderBillItem.bill))
            .where(PaymentOrder.order_number == order_number)
        )
        return result.scalar_one_or_none()


@lru_cache()
def get_runner() -> BillingMaintenanceRunner:
    """Process-wide maintenance runner."""
    from lease_ledger.database import async_session_factory, engine

    return BillingMaintenanceRunner(async_session_factory, engine)
