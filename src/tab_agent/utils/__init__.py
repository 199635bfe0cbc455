"""Shared utility functions for the orchestrator."""

from .json_decode import decode_json_object, decode_json_reply, extract_json_object, strip_code_fences
from .rich_logging import TaskContextLogger, TaskLogFormatter, setup_logging

__all__ = [
    # Model reply decoding
    "decode_json_object",
    "decode_json_reply",
    "extract_json_object",
    "strip_code_fences",
    # Logging
    "TaskContextLogger",
    "TaskLogFormatter",
    "setup_logging",
]
