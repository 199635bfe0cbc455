"""Planner, navigator, validator and router agents."""

from .navigator import NavigatorAgent, NavigatorDecision
from .planner import Plan, PlannerAgent
from .router import RouteDecision, TaskIntent, TaskRouter
from .validator import Validation, ValidationPolicy, ValidatorAgent

__all__ = [
    "NavigatorAgent",
    "NavigatorDecision",
    "Plan",
    "PlannerAgent",
    "RouteDecision",
    "TaskIntent",
    "TaskRouter",
    "Validation",
    "ValidationPolicy",
    "ValidatorAgent",
]
