"""Task, message and execution-record models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class TaskStatus(str, Enum):
    """Task status values."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


class MessageType(str, Enum):
    """Protocol message discriminators, outbound and inbound."""
    # Orchestrator -> client
    TASK_START = "task_start"
    STATUS_UPDATE = "status_update"
    TASK_COMPLETE = "task_complete"
    TASK_ERROR = "task_error"
    TASK_CANCELLED = "task_cancelled"
    CONNECTED = "connected"
    STATUS_RESPONSE = "status_response"

    # Client -> orchestrator
    GET_STATUS = "get_status"
    NEW_TASK = "new_task"
    CANCEL_TASK = "cancel_task"


class Message(BaseModel):
    """Immutable protocol message."""

    model_config = ConfigDict(frozen=True)

    type: MessageType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    task_id: Optional[str] = None

    @field_serializer('timestamp')
    def serialize_timestamp(self, dt: datetime) -> str:
        return dt.isoformat()

    def to_wire(self) -> Dict[str, Any]:
        """Flat JSON shape sent over the websocket."""
        wire = {
            "type": self.type.value,
            "task_id": self.task_id,
            "timestamp": self.timestamp.isoformat(),
        }
        wire.update(self.payload)
        return wire


class ExecutionRecord(BaseModel):
    """One executed step of a task."""
    step: int
    plan_summary: str
    action: str
    intent: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    result: str = ""
    success: bool


class TaskOutcome(str, Enum):
    """How a task run ended."""
    SUCCESS = "success"          # planner declared done
    VALIDATED = "validated"      # validator judged the final state
    EXHAUSTED = "exhausted"      # max_steps reached
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    CHAT = "chat"                # answered directly, no automation


class TaskResult(BaseModel):
    """Final result of one execution loop run."""

    model_config = ConfigDict(use_enum_values=True)

    success: bool
    outcome: TaskOutcome
    message: str = ""
    confidence: Optional[float] = None
    explanation: Optional[str] = None
    steps: int = 0
    history: List[ExecutionRecord] = Field(default_factory=list)


class Task(BaseModel):
    """A client-requested task owned by the task manager."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    input: str
    status: TaskStatus = TaskStatus.RUNNING
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: Optional[datetime] = None
    messages: List[Message] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None

    @field_serializer('start_time', 'end_time')
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None

    def is_terminal(self) -> bool:
        return self.status != TaskStatus.RUNNING

    def summary(self) -> Dict[str, Any]:
        """Status snapshot without the message log."""
        return {
            "id": self.id,
            "input": self.input,
            "status": TaskStatus(self.status).value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "message_count": len(self.messages),
            "result": self.result,
        }
