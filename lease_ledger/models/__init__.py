from lease_ledger.models.parcel import LandParcel, LeaseAgreement
from lease_ledger.models.billing import BillingRecord, PaymentStatus, OUTSTANDING_STATUSES
from lease_ledger.models.rate_config import RateConfiguration, RateType
from lease_ledger.models.transaction import FinancialTransaction, LEASE_BILLING_PAYMENT_TYPE
from lease_ledger.models.payment_order import PaymentOrder, OrderBillItem, OrderStatus

__all__ = [
    "LandParcel",
    "LeaseAgreement",
    "BillingRecord",
    "PaymentStatus",
    "OUTSTANDING_STATUSES",
    "RateConfiguration",
    "RateType",
    "FinancialTransaction",
    "LEASE_BILLING_PAYMENT_TYPE",
    "PaymentOrder",
    "OrderBillItem",
    "OrderStatus",
]
