"""Connection registry and message fan-out with replay for late joiners."""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from ..core.config import BroadcastConfig
from ..core.task import Message, MessageType

logger = logging.getLogger(__name__)

# (task_id, limit) -> most recent messages of that task, oldest first
HistorySource = Callable[[str, int], List[Message]]


class Transport(Protocol):
    """Anything that can deliver one JSON-ready dict to a client."""

    async def send(self, data: Dict[str, Any]) -> None: ...


@dataclass
class Connection:
    id: str
    transport: Transport
    connected: bool = True
    # True until the catch-up sequence and the ack have gone out
    attaching: bool = False
    backlog: Deque[Message] = field(default_factory=deque)
    last_activity: float = field(default_factory=time.time)


class BroadcastHub:
    """
    Fans protocol messages out to every attached connection.

    Every broadcast lands in a bounded FIFO replay buffer whatever the
    delivery outcome. Messages broadcast while nobody is attached are also
    held in a pending queue that the next attaching connection drains.
    """

    def __init__(
        self,
        config: Optional[BroadcastConfig] = None,
        history_source: Optional[HistorySource] = None,
    ):
        self.config = config or BroadcastConfig()
        self.history_source = history_source
        self._connections: Dict[str, Connection] = {}
        self._replay: Deque[Message] = deque(maxlen=self.config.replay_capacity)
        self._pending: Deque[Message] = deque(maxlen=self.config.pending_capacity)
        self._active_task: Optional[str] = None

    @property
    def replay_buffer(self) -> List[Message]:
        return list(self._replay)

    @property
    def pending(self) -> List[Message]:
        return list(self._pending)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def connected_count(self) -> int:
        return sum(1 for c in self._connections.values() if c.connected)

    def set_active_task(self, task_id: Optional[str]) -> None:
        self._active_task = task_id

    def get_active_task(self) -> Optional[str]:
        return self._active_task

    async def attach(self, connection_id: str, transport: Transport) -> Connection:
        """
        Register a connection and bring it up to date.

        Order: queued messages, then the last few messages of the active
        task, then one ``connected`` acknowledgment. Broadcasts that arrive
        while this is being sent are held on the connection and delivered
        after the acknowledgment.
        """
        connection = Connection(id=connection_id, transport=transport, attaching=True)
        self._connections[connection_id] = connection

        # Snapshot before the first await so later broadcasts only reach the backlog
        queued = list(self._pending)
        self._pending.clear()
        active = self._active_task
        history = self._active_history(active) if active else []

        if queued:
            logger.info(f"Flushing {len(queued)} queued message(s) to {connection_id}")
        for message in queued + history:
            if not await self._deliver(connection, message):
                break

        if connection.connected:
            await self._deliver(connection, Message(
                type=MessageType.CONNECTED,
                payload={"connection_id": connection_id, "active_task": active},
                task_id=active,
            ))

        while connection.backlog and connection.connected:
            await self._deliver(connection, connection.backlog.popleft())
        connection.backlog.clear()
        connection.attaching = False

        logger.info(f"Connection {connection_id} attached ({self.connected_count()} connected)")
        return connection

    def detach(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.connected = False
            logger.info(f"Connection {connection_id} detached ({self.connected_count()} connected)")

    async def broadcast(self, message: Message) -> int:
        """Best-effort delivery to every connected client; returns the delivered count."""
        self._replay.append(message)

        targets = [c for c in self._connections.values() if c.connected]
        if not targets:
            self._pending.append(message)
            return 0

        delivered = 0
        for connection in targets:
            if connection.attaching:
                connection.backlog.append(message)
                continue
            if await self._deliver(connection, message):
                delivered += 1
        return delivered

    async def send_to(self, connection_id: str, message: Message) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None or not connection.connected:
            return False
        return await self._deliver(connection, message)

    def _active_history(self, task_id: str) -> List[Message]:
        limit = self.config.replay_on_attach
        if limit <= 0:
            return []
        if self.history_source is not None:
            return list(self.history_source(task_id, limit))[-limit:]
        return [m for m in self._replay if m.task_id == task_id][-limit:]

    async def _deliver(self, connection: Connection, message: Message) -> bool:
        try:
            await connection.transport.send(message.to_wire())
        except Exception as e:
            connection.connected = False
            logger.warning(f"Delivery to {connection.id} failed, marking disconnected: {e}")
            return False
        connection.last_activity = time.time()
        return True
