"""FastAPI server exposing the orchestrator over a websocket and REST."""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .broadcast import BroadcastHub
from .models import (
    CancelTaskMessage,
    CreateTaskRequest,
    HealthResponse,
    MessageData,
    NewTaskMessage,
    StatusSnapshot,
    TaskActionResponse,
    TaskSummary,
)
from ..browser.driver import PageDriver, load_driver
from ..core.config import OrchestratorConfig
from ..core.orchestrator import Orchestrator
from ..core.task import Message, MessageType
from ..llm.base import ModelBackend

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Adapts a FastAPI websocket to the hub's transport interface."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, data: Dict[str, Any]) -> None:
        await self.websocket.send_json(data)


def create_app(
    config: Optional[OrchestratorConfig] = None,
    driver: Optional[PageDriver] = None,
    model: Optional[ModelBackend] = None,
) -> FastAPI:
    """Create FastAPI application with all routes."""
    config = config or OrchestratorConfig()
    if driver is None:
        driver = load_driver(config.browser.driver_factory)

    hub = BroadcastHub(config.broadcast)
    orchestrator = Orchestrator(config, driver=driver, model=model, listener=hub.broadcast)
    hub.history_source = orchestrator.manager.recent_messages

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down orchestrator")
        await orchestrator.shutdown()

    app = FastAPI(
        title="Tab Agent Orchestrator",
        description="Runs natural-language browser tasks and streams their progress",
        version="0.1.0",
        lifespan=lifespan,
    )

    if config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.config = config
    app.state.hub = hub
    app.state.orchestrator = orchestrator
    app.state.start_time = datetime.now(timezone.utc)

    register_routes(app)

    return app


def _summary(task) -> TaskSummary:
    return TaskSummary(**task.summary())


def _status_snapshot(app: FastAPI) -> StatusSnapshot:
    hub: BroadcastHub = app.state.hub
    orchestrator: Orchestrator = app.state.orchestrator
    active_id = hub.get_active_task()
    active = orchestrator.status(active_id) if active_id else None
    return StatusSnapshot(
        active_task=_summary(active) if active else None,
        running=[_summary(t) for t in orchestrator.manager.running_tasks()],
        connections=hub.connected_count(),
    )


async def start_task(app: FastAPI, task_input: str, task_id: Optional[str] = None):
    """Start a task and make it the active task for replay."""
    task = await app.state.orchestrator.start_task(task_input, task_id)
    app.state.hub.set_active_task(task.id)
    return task


async def handle_client_message(app: FastAPI, connection_id: str, data: Dict[str, Any]) -> None:
    """Dispatch one websocket request. Requests are fire-and-forget."""
    hub: BroadcastHub = app.state.hub
    orchestrator: Orchestrator = app.state.orchestrator
    msg_type = data.get("type")

    if msg_type == MessageType.GET_STATUS.value:
        await hub.send_to(connection_id, Message(
            type=MessageType.STATUS_RESPONSE,
            payload={"status": _status_snapshot(app).model_dump(mode="json")},
            task_id=hub.get_active_task(),
        ))

    elif msg_type == MessageType.NEW_TASK.value:
        try:
            request = NewTaskMessage.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid new_task from {connection_id}: {e}")
            await hub.send_to(connection_id, Message(
                type=MessageType.TASK_ERROR,
                payload={"error": "Invalid new_task request", "title": "Invalid request",
                         "explanation": str(e), "actions": ["Send a non-empty 'task' string"]},
            ))
            return
        try:
            await start_task(app, request.task, request.task_id)
        except ValueError as e:
            logger.warning(f"Rejected new_task from {connection_id}: {e}")
            await hub.send_to(connection_id, Message(
                type=MessageType.TASK_ERROR,
                payload={"error": str(e), "title": "Task not started", "explanation": str(e), "actions": []},
            ))

    elif msg_type == MessageType.CANCEL_TASK.value:
        try:
            request = CancelTaskMessage.model_validate({"task_id": data.get("task_id")})
        except ValidationError as e:
            logger.warning(f"Invalid cancel_task from {connection_id}: {e}")
            await hub.send_to(connection_id, Message(
                type=MessageType.TASK_ERROR,
                payload={"error": "Invalid cancel_task request", "title": "Invalid request",
                         "explanation": str(e), "actions": ["Send 'task_id' as a string or omit it"]},
            ))
            return
        task_id = request.task_id or hub.get_active_task()
        if not task_id or not await orchestrator.cancel_task(task_id):
            logger.info(f"cancel_task from {connection_id}: no running task {task_id}")

    else:
        logger.warning(f"Ignoring unknown message type from {connection_id}: {msg_type!r}")


def register_routes(app: FastAPI):
    """Register all API routes."""

    # ============== REST API Endpoints ==============

    @app.get("/health", response_model=HealthResponse)
    async def get_health():
        """Liveness and a few counters."""
        uptime = (datetime.now(timezone.utc) - app.state.start_time).total_seconds()
        return HealthResponse(
            uptime_seconds=int(uptime),
            running_tasks=len(app.state.orchestrator.manager.running_tasks()),
            connections=app.state.hub.connected_count(),
            active_task=app.state.hub.get_active_task(),
            driver_configured=app.state.orchestrator.driver is not None,
        )

    @app.get("/api/tasks", response_model=List[TaskSummary])
    async def list_tasks():
        """Running tasks first, then finished ones."""
        manager = app.state.orchestrator.manager
        return [_summary(t) for t in manager.running_tasks() + manager.terminal_tasks()]

    @app.post("/api/tasks", response_model=TaskSummary)
    async def create_task(request: CreateTaskRequest):
        """Start a task (same as the websocket new_task request)."""
        try:
            task = await start_task(app, request.task, request.task_id)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return _summary(task)

    @app.get("/api/tasks/{task_id}", response_model=TaskSummary)
    async def get_task(task_id: str):
        task = app.state.orchestrator.status(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return _summary(task)

    @app.get("/api/tasks/{task_id}/messages", response_model=List[MessageData])
    async def get_task_messages(task_id: str, limit: int = Query(default=20, ge=1, le=100)):
        """Tail of the task's message log, oldest first."""
        if app.state.orchestrator.status(task_id) is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return [
            MessageData(type=m.type.value, task_id=m.task_id, timestamp=m.timestamp, payload=m.payload)
            for m in app.state.orchestrator.manager.recent_messages(task_id, limit)
        ]

    @app.post("/api/tasks/{task_id}/cancel", response_model=TaskActionResponse)
    async def cancel_task(task_id: str):
        cancelled = await app.state.orchestrator.cancel_task(task_id)
        if not cancelled and app.state.orchestrator.status(task_id) is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return TaskActionResponse(
            success=cancelled,
            task_id=task_id,
            action="cancel",
            message="Task cancelled" if cancelled else "Task is not running",
        )

    # ============== WebSocket ==============

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Protocol endpoint: progress fan-out plus task requests."""
        await websocket.accept()
        connection_id = uuid.uuid4().hex[:8]
        hub: BroadcastHub = app.state.hub
        await hub.attach(connection_id, WebSocketTransport(websocket))

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON message from {connection_id}")
                    continue
                if not isinstance(data, dict):
                    logger.warning(f"Ignoring non-object message from {connection_id}")
                    continue
                await handle_client_message(app, connection_id, data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket client {connection_id} disconnected")
        except Exception as e:
            logger.error(f"WebSocket error on {connection_id}: {e}")
        finally:
            hub.detach(connection_id)


def run_server(
    config: Optional[OrchestratorConfig] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
):
    """Run the orchestrator server.

    Args:
        config: Orchestrator configuration (defaults when omitted)
        host: Bind address (default: server.host from config)
        port: Server port (default: server.port from config)
    """
    import uvicorn

    config = config or OrchestratorConfig()
    app = create_app(config)

    host = host or config.server.host
    port = port or config.server.port
    logger.info(f"Starting orchestrator at ws://{host}:{port}/ws")

    uvicorn.run(app, host=host, port=port, log_level=config.server.log_level.lower())
