"""
Bill Allocation Engine

Decides which outstanding bills an incoming payment settles and how the
remaining future bills are adjusted. Pure: no database access, no mutation.

PRIORITY (deterministic, ordered by fiscal year):
    1. ALL overdue bills (fiscal_year < current year), oldest first. They are
       always settled in full, even if their count exceeds the requested
       number of bills.
    2. The current-year bill, if one exists and budget remains.
    3. Future bills taken from the END of the ascending list, i.e. the
       farthest years first. This "pay from the end" rule is a business rule:
       prepaying the most distant obligations, not the nearest ones.

SPILLOVER:
    Every future bill has its remaining_amount reduced by
    len(future_settled) * annual_installment, floored at 0. The reduction is
    planned over all future bills; the settled ones are then forced to 0.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence

from lease_ledger.core.dates import ZERO, to_decimal
from lease_ledger.core.exceptions import NoBillsSelected
from lease_ledger.models.billing import BillingRecord
from lease_ledger.schemas.bank_callback import (
    BillToPay,
    FutureBillAdjustment,
    PaymentBreakdown,
    PaymentOption,
)


class BillCategory(str, Enum):
    OVERDUE = "OVERDUE"
    CURRENT = "CURRENT"
    FUTURE = "FUTURE"


def classify_bill(bill: BillingRecord, current_year: int) -> BillCategory:
    if bill.fiscal_year < current_year:
        return BillCategory.OVERDUE
    if bill.fiscal_year == current_year:
        return BillCategory.CURRENT
    return BillCategory.FUTURE


@dataclass
class AllocationPlan:
    """Bills selected for one payment."""
    to_settle: List[BillingRecord]
    future_settled: List[BillingRecord]
    all_future_bills: List[BillingRecord]
    current_year: int

    @property
    def overdue_settled(self) -> List[BillingRecord]:
        return [b for b in self.to_settle if b.fiscal_year < self.current_year]

    @property
    def current_settled(self) -> Optional[BillingRecord]:
        for bill in self.to_settle:
            if bill.fiscal_year == self.current_year:
                return bill
        return None

    @property
    def future_years_settled(self) -> List[int]:
        return sorted(b.fiscal_year for b in self.future_settled)

    @property
    def total_amount(self) -> Decimal:
        return sum((to_decimal(b.amount_due) for b in self.to_settle), ZERO)

    def category_counts(self) -> Dict[str, int]:
        return {
            "overdue": len(self.overdue_settled),
            "current": 1 if self.current_settled is not None else 0,
            "future": len(self.future_settled),
        }


@dataclass(frozen=True)
class SpilloverAdjustment:
    bill: BillingRecord
    before: Decimal
    after: Decimal
    will_be_settled: bool

    @property
    def reduction(self) -> Decimal:
        return self.before - self.after


@dataclass
class SpilloverPlan:
    deduction_per_bill: Decimal
    adjustments: List[SpilloverAdjustment] = field(default_factory=list)

    @property
    def total_reduction(self) -> Decimal:
        return sum((a.reduction for a in self.adjustments), ZERO)


def allocate_bills(
    bills: Sequence[BillingRecord],
    number: int,
    current_year: int,
) -> AllocationPlan:
    """
    Select the bills one payment settles.

    Args:
        bills: The parcel's outstanding bills (UNPAID/OVERDUE, not deleted)
        number: Number of bill-units the payment is meant to settle
        current_year: Fiscal year considered "current"

    Raises:
        NoBillsSelected: If nothing would be settled
    """
    overdue = sorted(
        (b for b in bills if b.fiscal_year < current_year),
        key=lambda b: b.fiscal_year,
    )
    current = next((b for b in bills if b.fiscal_year == current_year), None)
    future = sorted(
        (b for b in bills if b.fiscal_year > current_year),
        key=lambda b: b.fiscal_year,
    )

    to_settle: List[BillingRecord] = []
    remaining = number

    # Overdue debt is cleared in full regardless of the budget
    if overdue:
        to_settle.extend(overdue)
        remaining -= len(overdue)

    if remaining > 0 and current is not None:
        to_settle.append(current)
        remaining -= 1

    future_settled: List[BillingRecord] = []
    if remaining > 0 and future:
        take = min(len(future), remaining)
        future_settled = future[-take:]
        to_settle.extend(future_settled)

    if not to_settle:
        raise NoBillsSelected(number)

    return AllocationPlan(
        to_settle=to_settle,
        future_settled=future_settled,
        all_future_bills=future,
        current_year=current_year,
    )


def plan_spillover(plan: AllocationPlan, annual_installment: Decimal) -> SpilloverPlan:
    """Compute the remaining_amount reduction for every future bill."""
    deduction = len(plan.future_settled) * to_decimal(annual_installment)
    spillover = SpilloverPlan(deduction_per_bill=deduction)
    if deduction <= 0:
        return spillover

    settled_ids = {b.bill_id for b in plan.future_settled}
    for bill in plan.all_future_bills:
        before = to_decimal(bill.remaining_amount)
        spillover.adjustments.append(
            SpilloverAdjustment(
                bill=bill,
                before=before,
                after=max(ZERO, before - deduction),
                will_be_settled=bill.bill_id in settled_ids,
            )
        )
    return spillover


def build_payment_notes(plan: AllocationPlan) -> str:
    counts = plan.category_counts()
    parts = []
    if counts["overdue"] > 0:
        parts.append(f"{counts['overdue']} overdue (fully paid)")
    if counts["current"] > 0:
        parts.append(f"{counts['current']} current (fully paid)")
    if counts["future"] > 0:
        years = ",".join(str(y) for y in plan.future_years_settled)
        parts.append(f"{counts['future']} future years {years} (fully paid)")
    return f"Payment for: {', '.join(parts)}"


def build_summary_message(plan: AllocationPlan) -> str:
    counts = plan.category_counts()
    return (
        f"Payment processed: {counts['overdue']} overdue, "
        f"{counts['current']} current, {counts['future']} future"
    )


def preview_payment_options(
    bills: Sequence[BillingRecord],
    annual_installment: Decimal,
    current_year: int,
    max_options: int = 10,
) -> List[PaymentOption]:
    """Describe how a payment of 1..N bill-units would be applied, without applying it."""
    options: List[PaymentOption] = []
    for number in range(1, min(max_options, len(bills)) + 1):
        plan = allocate_bills(bills, number, current_year)
        spillover = plan_spillover(plan, annual_installment)
        adjustments = {a.bill.bill_id: a for a in spillover.adjustments}
        settled_ids = {b.bill_id for b in plan.future_settled}

        future_adjustment = []
        for bill in plan.all_future_bills:
            current_remaining = to_decimal(bill.remaining_amount)
            adjustment = adjustments.get(bill.bill_id)
            future_adjustment.append(FutureBillAdjustment(
                fiscal_year=bill.fiscal_year,
                current_remaining=current_remaining,
                new_remaining=adjustment.after if adjustment else current_remaining,
                reduction=spillover.deduction_per_bill,
                will_be_paid=bill.bill_id in settled_ids,
            ))

        options.append(PaymentOption(
            number_of_bills=number,
            total_amount=plan.total_amount,
            breakdown=PaymentBreakdown(**plan.category_counts()),
            future_years_paid=plan.future_years_settled,
            total_deduction_applied_to_all_future=spillover.deduction_per_bill,
            future_bills_adjustment=future_adjustment,
            bills_to_pay=[
                BillToPay(
                    fiscal_year=b.fiscal_year,
                    amount_due=to_decimal(b.amount_due),
                    type=classify_bill(b, current_year).value,
                )
                for b in plan.to_settle
            ],
        ))
    return options
