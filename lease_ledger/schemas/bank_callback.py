"""Bank callback schemas: webhook payload, allocation result and ledger views."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from lease_ledger.config import settings

IDENTIFIER_PATTERN = r"^[A-Za-z0-9\-_]+$"


class BankCallbackRequest(BaseModel):
    """Inbound payment notification from the bank."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    transaction_id: str = Field(
        ...,
        alias="transactionId",
        min_length=1,
        max_length=100,
        pattern=IDENTIFIER_PATTERN,
        description="Bank transaction id (idempotency key)"
    )
    upin: str = Field(..., min_length=1, max_length=50, pattern=IDENTIFIER_PATTERN, description="Parcel UPIN")
    number: int = Field(
        ...,
        ge=1,
        le=settings.MAX_BILLS_PER_PAYMENT,
        description="Number of bill-units to settle"
    )
    amount_paid: Optional[Decimal] = Field(None, alias="amountPaid", gt=0, description="Amount received")
    payment_date: Optional[datetime] = Field(None, alias="paymentDate", description="Defaults to now")
    bank_branch: Optional[str] = Field(None, alias="bankBranch", max_length=200)
    bank_account: Optional[str] = Field(None, alias="bankAccount", max_length=100)
    notes: Optional[str] = Field(None, description="Free-text bank notes")


class ProcessedBill(BaseModel):
    """Before/after state of a bill settled by a payment."""
    bill_id: uuid.UUID
    fiscal_year: int
    bill_type: str = Field(..., description="OVERDUE, CURRENT or FUTURE")
    amount_due: Decimal
    amount_paid: Decimal
    remaining_before: Decimal
    remaining_amount: Decimal
    status_before: str
    status: str


class AdjustedFutureBill(BaseModel):
    """Spillover applied to a future bill that stays open."""
    bill_id: uuid.UUID
    fiscal_year: int
    remaining_before: Decimal
    remaining_amount: Decimal


class CallbackSummary(BaseModel):
    overdue_paid: int = 0
    current_paid: int = 0
    future_bills_paid: int = 0
    future_years_paid: List[int] = Field(default_factory=list)
    total_deduction_applied: Decimal = Decimal("0")


class BankCallbackResult(BaseModel):
    """Outcome of one processed payment."""
    success: bool = True
    transaction_id: uuid.UUID
    bank_transaction_id: str
    upin: str
    bills_updated: List[ProcessedBill]
    future_bills_adjusted: List[AdjustedFutureBill] = Field(default_factory=list)
    total_amount_paid: Decimal = Field(..., description="Sum of amount_due of settled bills")
    amount_received: Optional[Decimal] = Field(None, description="Amount reported by the bank")
    amount_matches: Optional[bool] = None
    message: str
    summary: CallbackSummary


class BankCallbackAck(BaseModel):
    """Transport-level acknowledgement; always returned with HTTP 200."""
    success: bool
    message: str
    error_code: Optional[str] = None
    data: Optional[BankCallbackResult] = None


# ==================== READ MODELS ====================

class OutstandingBill(BaseModel):
    bill_id: uuid.UUID
    fiscal_year: int
    category: str
    payment_status: str
    amount_due: Decimal
    penalty_amount: Decimal
    interest_amount: Decimal
    remaining_amount: Decimal
    due_date: Optional[datetime] = None


class OutstandingBillsResponse(BaseModel):
    upin: str
    total_unpaid_bills: int
    total_amount_due: Decimal
    bills: List[OutstandingBill]


class FutureBillAdjustment(BaseModel):
    fiscal_year: int
    current_remaining: Decimal
    new_remaining: Decimal
    reduction: Decimal
    will_be_paid: bool


class BillToPay(BaseModel):
    fiscal_year: int
    amount_due: Decimal
    type: str


class PaymentBreakdown(BaseModel):
    overdue: int
    current: int
    future: int


class PaymentOption(BaseModel):
    number_of_bills: int
    total_amount: Decimal
    breakdown: PaymentBreakdown
    future_years_paid: List[int]
    total_deduction_applied_to_all_future: Decimal
    future_bills_adjustment: List[FutureBillAdjustment]
    bills_to_pay: List[BillToPay]


class PaymentOptionsSummary(BaseModel):
    total_unpaid_bills: int
    overdue_count: int
    current_exists: bool
    future_count: int
    future_year_range: str


class PaymentOptionsResponse(BaseModel):
    upin: str
    base_payment_per_year: Decimal
    summary: PaymentOptionsSummary
    payment_options: List[PaymentOption]


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: uuid.UUID
    bank_transaction_id: str
    upin: str
    amount_paid: Optional[Decimal] = None
    payment_date: datetime
    payment_type: str
    bank_branch: Optional[str] = None
    bank_account: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    pagination: Pagination
