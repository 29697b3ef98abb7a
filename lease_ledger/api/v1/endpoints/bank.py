"""
Bank integration API endpoints.

Handles:
- Payment notifications (webhook) from the bank
- Outstanding bill and payment option lookups for a parcel
- Transaction history
"""

import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import ValidationError

from lease_ledger.api.deps import DB
from lease_ledger.core.exceptions import LedgerError
from lease_ledger.schemas.bank_callback import (
    BankCallbackAck,
    BankCallbackRequest,
    OutstandingBillsResponse,
    PaymentOptionsResponse,
    TransactionListResponse,
    TransactionResponse,
)
from lease_ledger.services.bank_callback_service import BankCallbackService, PaymentMeta

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Bank Callback"])


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request payload"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


# ==================== WEBHOOK ====================

@router.post(
    "/callback",
    response_model=BankCallbackAck,
    summary="Bank payment callback",
    description="Called by the bank for every lease payment. Always answers 200; "
                "the outcome is in the payload.",
)
async def bank_transaction_callback(
    request: Request,
    db: DB,
):
    """
    Apply a bank payment to a parcel's bills.

    Idempotent on transactionId: a repeated notification is acknowledged
    with success=false and error_code DUPLICATE_TRANSACTION.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Bank callback with invalid JSON payload")
        return BankCallbackAck(
            success=False,
            message="Invalid JSON payload",
            error_code="INVALID_PAYLOAD",
        )

    try:
        data = BankCallbackRequest.model_validate(payload)
    except ValidationError as e:
        message = _validation_message(e)
        logger.warning(f"Bank callback validation failed: {message}")
        return BankCallbackAck(success=False, message=message, error_code="VALIDATION_ERROR")

    logger.info(
        f"Bank callback received: transaction={data.transaction_id} "
        f"upin={data.upin} number={data.number} amount={data.amount_paid}"
    )

    service = BankCallbackService(db)
    try:
        result = await service.process_payment(
            bank_transaction_id=data.transaction_id,
            upin=data.upin,
            number_of_bills=data.number,
            amount_paid=data.amount_paid,
            payment_date=data.payment_date,
            meta=PaymentMeta(
                bank_branch=data.bank_branch,
                bank_account=data.bank_account,
                notes=data.notes,
            ),
        )
    except LedgerError as e:
        logger.error(
            f"Bank callback failed: transaction={data.transaction_id} "
            f"upin={data.upin} error={e.error_code}: {e}"
        )
        return BankCallbackAck(success=False, message=e.user_message, error_code=e.error_code)
    except Exception as e:
        logger.exception(
            f"Bank callback error: transaction={data.transaction_id} upin={data.upin}: {e}"
        )
        return BankCallbackAck(
            success=False,
            message="Failed to process bank callback",
            error_code="INTERNAL_ERROR",
        )

    return BankCallbackAck(
        success=True,
        message="Bank callback processed successfully",
        data=result,
    )


# ==================== LEDGER LOOKUPS ====================

@router.get(
    "/bills/{upin}",
    response_model=OutstandingBillsResponse,
    summary="Outstanding bills of a parcel",
)
async def get_outstanding_bills(upin: str, db: DB):
    service = BankCallbackService(db)
    return await service.get_outstanding_bills(upin)


@router.get(
    "/payment-options/{upin}",
    response_model=PaymentOptionsResponse,
    summary="Preview payment options",
    description="How a payment of 1..N bills would be applied. Nothing is changed.",
)
async def get_payment_options(upin: str, db: DB):
    service = BankCallbackService(db)
    try:
        return await service.get_payment_options(upin)
    except LedgerError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)


@router.get(
    "/transactions/upin/{upin}",
    response_model=TransactionListResponse,
    summary="Transactions of a parcel",
)
async def list_transactions(
    upin: str,
    db: DB,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    service = BankCallbackService(db)
    return await service.list_transactions(upin, page=page, limit=limit)


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a transaction",
)
async def get_transaction(transaction_id: uuid.UUID, db: DB):
    service = BankCallbackService(db)
    try:
        return await service.get_transaction(transaction_id)
    except LedgerError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)
