"""Pydantic models for the REST API and websocket requests."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Orchestrator health."""
    status: str = "ok"
    uptime_seconds: int
    running_tasks: int
    connections: int
    active_task: Optional[str] = None
    driver_configured: bool


class TaskSummary(BaseModel):
    """Task status without its message log."""
    id: str
    input: str
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    message_count: int
    result: Optional[Dict[str, Any]] = None


class MessageData(BaseModel):
    """One logged protocol message."""
    type: str
    task_id: Optional[str] = None
    timestamp: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)


class CreateTaskRequest(BaseModel):
    """Start a task over REST."""
    task: str = Field(..., min_length=1, max_length=10000)
    task_id: Optional[str] = Field(default=None, pattern=r'^[a-zA-Z0-9_-]{1,64}$')


class TaskActionResponse(BaseModel):
    """Response for task actions."""
    success: bool
    task_id: str
    action: str
    message: str


class NewTaskMessage(BaseModel):
    """Websocket ``new_task`` request."""
    task: str = Field(..., min_length=1, max_length=10000)
    task_id: Optional[str] = Field(default=None, pattern=r'^[a-zA-Z0-9_-]{1,64}$')


class CancelTaskMessage(BaseModel):
    """Websocket ``cancel_task`` request; defaults to the active task."""
    task_id: Optional[str] = None


class StatusSnapshot(BaseModel):
    """Payload of ``status_response``."""
    active_task: Optional[TaskSummary] = None
    running: List[TaskSummary] = Field(default_factory=list)
    connections: int = 0
