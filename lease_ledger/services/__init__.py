# Services module
from lease_ledger.services.rate_config_service import RateResolver, ResolvedRate, RateSource
from lease_ledger.services.penalty_calculator import PenaltyCalculator, PenaltyResult, compute_penalty
from lease_ledger.services.bank_callback_service import BankCallbackService, PaymentMeta

__all__ = [
    "RateResolver",
    "ResolvedRate",
    "RateSource",
    "PenaltyCalculator",
    "PenaltyResult",
    "compute_penalty",
    "BankCallbackService",
    "PaymentMeta",
]
