"""Maintenance run metrics and status schemas."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TaskResult(BaseModel):
    """Outcome of one maintenance task."""
    task: str
    processed: int = 0
    failed: int = 0
    duration_ms: int = 0
    success: bool = True


class TaskFailure(BaseModel):
    task: str
    error: str
    timestamp: datetime


class MaintenanceMetrics(BaseModel):
    """Metrics for one maintenance run."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    lock_type: str = Field("none", description="advisory, file or none")
    tasks: Dict[str, TaskResult] = Field(default_factory=dict)
    errors: List[TaskFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def task_count(self, name: str) -> int:
        result = self.tasks.get(name)
        return result.processed if result else 0


class ScheduledJob(BaseModel):
    id: str
    name: str
    next_run_time: Optional[str] = None
    trigger: str


class MaintenanceStatus(BaseModel):
    scheduler_running: bool
    state: str
    jobs: List[ScheduledJob] = Field(default_factory=list)
    last_run: Optional[MaintenanceMetrics] = None


class MaintenanceRunResponse(BaseModel):
    success: bool
    message: str
    metrics: Optional[MaintenanceMetrics] = None
