"""Procedural memory for the execution loop.

Keeps a bounded window of recent agent exchanges. When the window
overflows, the oldest entries are folded into a short procedural summary
so long tasks keep a compact record of what already happened without
growing the prompt without bound.
"""

import json
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Optional

from .config import MemoryConfig

logger = logging.getLogger(__name__)

# Findings longer than this are clipped inside a summary
MAX_FINDINGS_CHARS = 600


@dataclass
class MemoryEntry:
    """A single exchange recorded by an agent or the loop."""
    step: int
    role: str        # "planner", "navigator", "action", "validator", ...
    action: str      # short label for what happened
    content: str
    timestamp: float


@dataclass
class ProceduralSummary:
    """Compressed view of several consecutive memory entries."""
    steps: str       # "first-last"
    actions: str
    findings: str
    timestamp: float


class ProceduralMemory:
    """
    Bounded conversational context shared by the agents of one task.

    Features:
    - Raw window of recent entries (capacity ``window_size``)
    - Overflow compresses the oldest ``compress_batch`` entries into a summary
    - Summary ring of capacity ``summary_capacity``, oldest evicted
    - ``get_context()`` is the only read surface handed to agents
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or MemoryConfig()
        self._entries: List[MemoryEntry] = []
        self._summaries: Deque[ProceduralSummary] = deque(maxlen=self.config.summary_capacity)
        self._step = 0

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def entries(self) -> List[MemoryEntry]:
        return list(self._entries)

    @property
    def summaries(self) -> List[ProceduralSummary]:
        return list(self._summaries)

    def add_message(self, role: str, action: str, content: Any) -> MemoryEntry:
        """Append an entry, compressing the window if it overflows."""
        self._step += 1
        entry = MemoryEntry(
            step=self._step,
            role=role,
            action=action,
            content=self._stringify(content),
            timestamp=time.time(),
        )
        self._entries.append(entry)

        if len(self._entries) > self.config.window_size:
            self._compress()

        return entry

    def get_context(self) -> Dict[str, Any]:
        """Recent raw entries, every summary, and the current step."""
        recent = self._entries[-self.config.context_recent:] if self.config.context_recent else []
        return {
            "recent_messages": [asdict(e) for e in recent],
            "procedural_summaries": [asdict(s) for s in self._summaries],
            "current_step": self._step,
        }

    def clear(self) -> None:
        self._entries.clear()
        self._summaries.clear()
        self._step = 0

    def _compress(self) -> None:
        batch = self._entries[:self.config.compress_batch]
        summary = ProceduralSummary(
            steps=f"{batch[0].step}-{batch[-1].step}",
            actions=", ".join(e.action for e in batch),
            findings=self._clip(" | ".join(e.content for e in batch if e.content)),
            timestamp=time.time(),
        )
        self._summaries.append(summary)
        self._entries = self._entries[-self.config.retain_after_compress:]
        logger.debug(
            f"Compressed memory steps {summary.steps}; "
            f"{len(self._entries)} entries, {len(self._summaries)} summaries retained"
        )

    @staticmethod
    def _stringify(content: Any) -> str:
        if isinstance(content, str):
            return content
        return json.dumps(content, sort_keys=True, default=str)

    @staticmethod
    def _clip(text: str) -> str:
        if len(text) <= MAX_FINDINGS_CHARS:
            return text
        return text[:MAX_FINDINGS_CHARS - 3] + "..."
