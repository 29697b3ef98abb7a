"""
Bank Callback Service

Applies one incoming bank payment to a parcel's outstanding bills.

FLOW (one database transaction; nothing persists on failure):
    1. Idempotency guard on the bank transaction id
    2. Resolve parcel and lease agreement
    3. Load outstanding bills (row-locked where the database supports it)
    4. Allocate (see bill_allocation)
    5. Insert the FinancialTransaction - the durability anchor
    6. Apply the spillover to all future bills
    7. Mark the selected bills PAID
    8. Return a before/after summary

USAGE:
    service = BankCallbackService(db)
    result = await service.process_payment(
        bank_transaction_id="FT2401", upin="P1", number_of_bills=3,
    )
"""

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lease_ledger.config import settings
from lease_ledger.core.dates import ZERO, current_fiscal_year, ensure_utc, to_decimal, utcnow
from lease_ledger.core.exceptions import (
    DuplicateTransaction,
    LeaseNotFound,
    NoOutstandingBills,
    ParcelNotFound,
    TransactionNotFound,
)
from lease_ledger.models.billing import BillingRecord, PaymentStatus, OUTSTANDING_STATUSES
from lease_ledger.models.parcel import LandParcel, LeaseAgreement
from lease_ledger.models.transaction import FinancialTransaction, LEASE_BILLING_PAYMENT_TYPE
from lease_ledger.schemas.bank_callback import (
    AdjustedFutureBill,
    BankCallbackResult,
    CallbackSummary,
    OutstandingBill,
    OutstandingBillsResponse,
    Pagination,
    PaymentOptionsResponse,
    PaymentOptionsSummary,
    ProcessedBill,
    TransactionListResponse,
    TransactionResponse,
)
from lease_ledger.services.bill_allocation import (
    allocate_bills,
    build_payment_notes,
    build_summary_message,
    classify_bill,
    plan_spillover,
    preview_payment_options,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentMeta:
    """Free-text bank metadata carried with a payment."""
    bank_branch: Optional[str] = None
    bank_account: Optional[str] = None
    notes: Optional[str] = None


class BankCallbackService:
    """Payment transaction processor and ledger read-side for one session."""

    def __init__(self, db: AsyncSession, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout if timeout is not None else settings.PAYMENT_TRANSACTION_TIMEOUT_SECONDS

    # ==================== PAYMENT PROCESSING ====================

    async def process_payment(
        self,
        bank_transaction_id: str,
        upin: str,
        number_of_bills: int,
        amount_paid: Optional[Decimal] = None,
        payment_date: Optional[datetime] = None,
        meta: Optional[PaymentMeta] = None,
        now: Optional[datetime] = None,
    ) -> BankCallbackResult:
        """
        Apply a bank payment atomically.

        Raises:
            DuplicateTransaction: bank_transaction_id already recorded
            ParcelNotFound / LeaseNotFound: unknown UPIN or no lease
            NoOutstandingBills: parcel has nothing to pay
            NoBillsSelected: allocation selected nothing
            asyncio.TimeoutError: the unit of work exceeded its timeout
        """
        try:
            result = await asyncio.wait_for(
                self._apply_payment(
                    bank_transaction_id=bank_transaction_id,
                    upin=upin,
                    number_of_bills=number_of_bills,
                    amount_paid=amount_paid,
                    payment_date=payment_date,
                    meta=meta or PaymentMeta(),
                    now=now or utcnow(),
                ),
                timeout=self.timeout,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Bank callback processed: transaction={result.transaction_id} "
            f"bank_id={bank_transaction_id} upin={upin} "
            f"overdue={result.summary.overdue_paid} current={result.summary.current_paid} "
            f"future={result.summary.future_bills_paid} "
            f"future_years={','.join(str(y) for y in result.summary.future_years_paid)} "
            f"deduction={result.summary.total_deduction_applied} total={result.total_amount_paid}",
            extra={"fields": {
                "transaction_id": str(result.transaction_id),
                "bank_transaction_id": bank_transaction_id,
                "upin": upin,
                "total_amount_paid": str(result.total_amount_paid),
                "future_years_paid": list(result.summary.future_years_paid),
            }},
        )
        return result

    async def _apply_payment(
        self,
        bank_transaction_id: str,
        upin: str,
        number_of_bills: int,
        amount_paid: Optional[Decimal],
        payment_date: Optional[datetime],
        meta: PaymentMeta,
        now: datetime,
    ) -> BankCallbackResult:
        # 1. Idempotency guard
        existing = await self.db.execute(
            select(FinancialTransaction.transaction_id)
            .where(FinancialTransaction.bank_transaction_id == bank_transaction_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateTransaction(bank_transaction_id)

        # 2. Parcel and lease
        parcel = await self.db.get(LandParcel, upin)
        if parcel is None or parcel.is_deleted:
            raise ParcelNotFound(upin)

        lease = await self._get_lease(upin)
        if lease is None:
            raise LeaseNotFound(upin)
        annual_installment = to_decimal(lease.annual_installment)

        # 3. Outstanding bills, oldest first
        bills = await self._load_outstanding_bills(upin, lock=True)
        if not bills:
            raise NoOutstandingBills(upin)

        # 4. Allocation
        current_year = current_fiscal_year(now)
        plan = allocate_bills(bills, number_of_bills, current_year)
        spillover = plan_spillover(plan, annual_installment)

        before = {
            bill.bill_id: (to_decimal(bill.remaining_amount), bill.payment_status)
            for bill in plan.to_settle
        }

        # 5. Durability anchor
        transaction = FinancialTransaction(
            bank_transaction_id=bank_transaction_id,
            upin=upin,
            amount_paid=amount_paid,
            payment_date=payment_date or now,
            payment_type=LEASE_BILLING_PAYMENT_TYPE,
            bank_branch=meta.bank_branch,
            bank_account=meta.bank_account,
            notes=meta.notes or build_payment_notes(plan),
        )
        self.db.add(transaction)
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent callback inserted the same bank transaction id
            raise DuplicateTransaction(bank_transaction_id)

        # 6. Spillover over every future bill
        adjusted: List[AdjustedFutureBill] = []
        if spillover.adjustments:
            logger.info(
                f"Adjusting {len(spillover.adjustments)} future bills for {upin}: "
                f"deducting {spillover.deduction_per_bill} from each remaining_amount"
            )
        for adjustment in spillover.adjustments:
            adjustment.bill.remaining_amount = adjustment.after
            adjustment.bill.updated_at = now
            if not adjustment.will_be_settled:
                adjusted.append(AdjustedFutureBill(
                    bill_id=adjustment.bill.bill_id,
                    fiscal_year=adjustment.bill.fiscal_year,
                    remaining_before=adjustment.before,
                    remaining_amount=adjustment.after,
                ))

        # 7. Settle the selected bills
        processed: List[ProcessedBill] = []
        for bill in plan.to_settle:
            remaining_before, status_before = before[bill.bill_id]
            bill.payment_status = PaymentStatus.PAID.value
            bill.remaining_amount = ZERO
            bill.amount_paid = to_decimal(bill.amount_due)
            bill.last_payment_date = now
            bill.updated_at = now
            processed.append(ProcessedBill(
                bill_id=bill.bill_id,
                fiscal_year=bill.fiscal_year,
                bill_type=classify_bill(bill, current_year).value,
                amount_due=to_decimal(bill.amount_due),
                amount_paid=to_decimal(bill.amount_due),
                remaining_before=remaining_before,
                remaining_amount=ZERO,
                status_before=status_before,
                status=bill.payment_status,
            ))

        await self.db.flush()

        # 8. Summary
        total = plan.total_amount
        amount_matches = None
        if amount_paid is not None:
            amount_matches = to_decimal(amount_paid) == total
            if not amount_matches:
                logger.warning(
                    f"Payment amount mismatch for {bank_transaction_id}: "
                    f"expected {total} for {len(plan.to_settle)} bill(s), received {amount_paid}"
                )

        counts = plan.category_counts()
        return BankCallbackResult(
            success=True,
            transaction_id=transaction.transaction_id,
            bank_transaction_id=bank_transaction_id,
            upin=upin,
            bills_updated=processed,
            future_bills_adjusted=adjusted,
            total_amount_paid=total,
            amount_received=amount_paid,
            amount_matches=amount_matches,
            message=build_summary_message(plan),
            summary=CallbackSummary(
                overdue_paid=counts["overdue"],
                current_paid=counts["current"],
                future_bills_paid=counts["future"],
                future_years_paid=plan.future_years_settled,
                total_deduction_applied=spillover.deduction_per_bill,
            ),
        )

    # ==================== QUERIES ====================

    async def _get_lease(self, upin: str) -> Optional[LeaseAgreement]:
        result = await self.db.execute(
            select(LeaseAgreement).where(LeaseAgreement.upin == upin)
        )
        return result.scalar_one_or_none()

    async def _load_outstanding_bills(self, upin: str, lock: bool = False) -> List[BillingRecord]:
        stmt = (
            select(BillingRecord)
            .where(
                BillingRecord.upin == upin,
                BillingRecord.payment_status.in_(OUTSTANDING_STATUSES),
                BillingRecord.is_deleted.is_(False),
            )
            .order_by(BillingRecord.fiscal_year.asc())
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_outstanding_bills(
        self,
        upin: str,
        now: Optional[datetime] = None,
    ) -> OutstandingBillsResponse:
        """Outstanding bills of a parcel with their OVERDUE/CURRENT/FUTURE category."""
        current_year = current_fiscal_year(now)
        bills = await self._load_outstanding_bills(upin)

        items = [
            OutstandingBill(
                bill_id=bill.bill_id,
                fiscal_year=bill.fiscal_year,
                category=classify_bill(bill, current_year).value,
                payment_status=bill.payment_status,
                amount_due=to_decimal(bill.amount_due),
                penalty_amount=to_decimal(bill.penalty_amount),
                interest_amount=to_decimal(bill.interest_amount),
                remaining_amount=to_decimal(bill.remaining_amount),
                due_date=ensure_utc(bill.due_date),
            )
            for bill in bills
        ]
        return OutstandingBillsResponse(
            upin=upin,
            total_unpaid_bills=len(items),
            total_amount_due=sum((item.amount_due for item in items), ZERO),
            bills=items,
        )

    async def get_payment_options(
        self,
        upin: str,
        now: Optional[datetime] = None,
        max_options: int = settings.MAX_BILLS_PER_PAYMENT,
    ) -> PaymentOptionsResponse:
        """Preview how 1..N bill-units would be applied; mutates nothing."""
        lease = await self._get_lease(upin)
        if lease is None:
            raise LeaseNotFound(upin)

        current_year = current_fiscal_year(now)
        bills = await self._load_outstanding_bills(upin)
        annual_installment = to_decimal(lease.annual_installment)

        overdue = [b for b in bills if b.fiscal_year < current_year]
        future = [b for b in bills if b.fiscal_year > current_year]
        current_exists = any(b.fiscal_year == current_year for b in bills)

        if future:
            year_range = f"{future[0].fiscal_year} - {future[-1].fiscal_year}"
        else:
            year_range = "none"

        return PaymentOptionsResponse(
            upin=upin,
            base_payment_per_year=annual_installment,
            summary=PaymentOptionsSummary(
                total_unpaid_bills=len(bills),
                overdue_count=len(overdue),
                current_exists=current_exists,
                future_count=len(future),
                future_year_range=year_range,
            ),
            payment_options=preview_payment_options(
                bills, annual_installment, current_year, max_options=max_options
            ),
        )

    async def list_transactions(
        self,
        upin: str,
        page: int = 1,
        limit: int = 10,
    ) -> TransactionListResponse:
        """Transactions of a parcel, newest payment first."""
        page = max(1, page)
        limit = max(1, limit)

        total_result = await self.db.execute(
            select(func.count()).select_from(FinancialTransaction)
            .where(FinancialTransaction.upin == upin)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(FinancialTransaction)
            .where(FinancialTransaction.upin == upin)
            .order_by(FinancialTransaction.payment_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [TransactionResponse.model_validate(t) for t in result.scalars().all()]

        return TransactionListResponse(
            items=items,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit) if total else 0,
            ),
        )

    async def get_transaction(self, transaction_id: uuid.UUID) -> TransactionResponse:
        transaction = await self.db.get(FinancialTransaction, transaction_id)
        if transaction is None:
            raise TransactionNotFound(f"Transaction {transaction_id} not found")
        return TransactionResponse.model_validate(transaction)
