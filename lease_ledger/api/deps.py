from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lease_ledger.database import get_db
from lease_ledger.jobs.billing_maintenance import BillingMaintenanceRunner, get_runner


DB = Annotated[AsyncSession, Depends(get_db)]
MaintenanceRunner = Annotated[BillingMaintenanceRunner, Depends(get_runner)]
