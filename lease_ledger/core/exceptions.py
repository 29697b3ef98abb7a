"""Exception hierarchy for the billing ledger.

Every error carries a stable ``error_code`` and a ``user_message`` that the
transport layer can hand back to the bank or an operator without leaking
internals.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    error_code = "LEDGER_ERROR"
    user_message = "The ledger operation failed."

    def __init__(self, message: str = ""):
        super().__init__(message or self.user_message)


# ==================== PAYMENT PROCESSING ====================

class PaymentProcessingError(LedgerError):
    """Raised when a bank payment cannot be applied."""

    error_code = "PAYMENT_FAILED"
    user_message = "Failed to process bank callback."


class DuplicateTransaction(PaymentProcessingError):
    """The bank transaction id has already been recorded."""

    error_code = "DUPLICATE_TRANSACTION"
    user_message = "This transaction has already been processed."

    def __init__(self, bank_transaction_id: str):
        self.bank_transaction_id = bank_transaction_id
        super().__init__(f"Transaction {bank_transaction_id} already processed")


class ParcelNotFound(PaymentProcessingError):
    error_code = "PARCEL_NOT_FOUND"
    user_message = "Invalid UPIN. No parcel found."

    def __init__(self, upin: str):
        self.upin = upin
        super().__init__(f"No parcel found for UPIN: {upin}")


class LeaseNotFound(PaymentProcessingError):
    error_code = "LEASE_NOT_FOUND"
    user_message = "No lease agreement found for this UPIN."

    def __init__(self, upin: str):
        self.upin = upin
        super().__init__(f"No lease agreement found for UPIN: {upin}")


class NoOutstandingBills(PaymentProcessingError):
    error_code = "NO_OUTSTANDING_BILLS"
    user_message = "No unpaid bills found for this UPIN."

    def __init__(self, upin: str):
        self.upin = upin
        super().__init__(f"No unpaid bills found for UPIN: {upin}")


class NoBillsSelected(PaymentProcessingError):
    error_code = "NO_BILLS_SELECTED"
    user_message = "No bills match the selected payment option."

    def __init__(self, number: int):
        self.number = number
        super().__init__(f"No bills to update for number: {number}")


class TransactionNotFound(LedgerError):
    error_code = "TRANSACTION_NOT_FOUND"
    user_message = "Transaction not found."


# ==================== MAINTENANCE ====================

class MaintenanceError(LedgerError):
    """Raised when a maintenance run cannot start."""

    error_code = "MAINTENANCE_ERROR"
    user_message = "Billing maintenance failed."


class MaintenanceAlreadyRunning(MaintenanceError):
    error_code = "MAINTENANCE_ALREADY_RUNNING"
    user_message = "Maintenance is already running."

    def __init__(self, message: str = "Maintenance is already running"):
        super().__init__(message)


class LockUnavailable(MaintenanceError):
    error_code = "LOCK_UNAVAILABLE"
    user_message = "Could not acquire maintenance lock - another instance may be running."

    def __init__(self, message: str = "Could not acquire maintenance lock - another instance may be running"):
        super().__init__(message)
