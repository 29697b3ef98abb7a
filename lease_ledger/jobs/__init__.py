"""
Background Jobs Module

Handles scheduled tasks for:
- Marking unpaid bills overdue and refreshing their penalties
- Expiring and re-totalling payment orders
"""

from lease_ledger.jobs.billing_maintenance import BillingMaintenanceRunner, RunState, get_runner
from lease_ledger.jobs.maintenance_lock import LockType, MaintenanceLock
from lease_ledger.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, trigger_maintenance_now

__all__ = [
    "BillingMaintenanceRunner",
    "RunState",
    "get_runner",
    "LockType",
    "MaintenanceLock",
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "trigger_maintenance_now",
]
