"""Shared plumbing for the model-backed agents."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..core.cancellation import CancellationToken
from ..core.config import LLMConfig
from ..core.task import ExecutionRecord
from ..llm.base import AgentRole, CallOptions, ModelBackend

logger = logging.getLogger(__name__)


class BaseAgent:
    """An agent that asks one model a question per call.

    Subclasses build the prompt and decode the reply; memory is always
    passed in per call, never held by the agent.
    """

    role: AgentRole = AgentRole.PLANNER

    def __init__(self, model: ModelBackend, llm_config: Optional[LLMConfig] = None):
        self.model = model
        self.llm_config = llm_config or LLMConfig()

    def call_options(self) -> CallOptions:
        return CallOptions(
            max_tokens=self.llm_config.max_tokens.get(self.role.value, 800),
            temperature=self.llm_config.temperature,
        )

    async def ask(self, prompt: str, cancel_token: Optional[CancellationToken] = None) -> str:
        messages = [{"role": "user", "content": prompt}]
        return await self.model.call(messages, self.call_options(), self.role, cancel_token)


def format_recent_messages(recent: Sequence[Dict[str, Any]]) -> str:
    if not recent:
        return "No recent actions."
    return "\n".join(
        f"Step {m.get('step', '?')} ({m.get('role', 'unknown')}): "
        f"{m.get('action', 'action')} - {str(m.get('content', ''))[:100]}"
        for m in recent
    )


def format_summaries(summaries: Sequence[Dict[str, Any]]) -> str:
    if not summaries:
        return "No earlier history."
    return "\n".join(
        f"Steps {s.get('steps', '?')}: {s.get('actions', '')}\nFindings: {str(s.get('findings', ''))[:150]}"
        for s in summaries
    )


def format_history(history: List[ExecutionRecord], limit: int = 10) -> str:
    if not history:
        return "No actions executed yet."
    return "\n".join(
        f"Step {r.step}: {r.action} ({r.intent or 'no intent'}) - {'SUCCESS' if r.success else 'FAILED'}"
        + (f": {r.result[:100]}" if r.result else "")
        for r in history[-limit:]
    )
