"""Console logging with task context."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class TaskLogFormatter(logging.Formatter):
    """Custom formatter with task context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, component: str = "tab-agent", use_colors: bool = True):
        super().__init__()
        self.component = component
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        task_context = ""
        if getattr(record, "task_id", None):
            task_context = f"[{record.task_id[:8]}] "

        phase_context = ""
        if getattr(record, "phase", None):
            phase_context = f"[{record.phase}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        line = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.component}] {task_context}{phase_context}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class TaskContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds task id and loop phase to all log messages."""

    def __init__(self, logger: logging.Logger, task_id: Optional[str] = None):
        super().__init__(logger, {})
        self.current_task_id: Optional[str] = task_id
        self.current_phase: Optional[str] = None

    def set_task_context(self, task_id: Optional[str] = None, phase: Optional[str] = None):
        """Set current task context for logging."""
        if task_id:
            self.current_task_id = task_id
        if phase is not None:
            self.current_phase = phase

    def clear_context(self):
        self.current_task_id = None
        self.current_phase = None

    def process(self, msg, kwargs):
        """Add context to log record."""
        extra = dict(kwargs.get("extra") or {})
        if self.current_task_id:
            extra["task_id"] = self.current_task_id
        if self.current_phase:
            extra["phase"] = self.current_phase
        kwargs["extra"] = extra
        return msg, kwargs

    def task_started(self, task_input: str):
        self.info(f"Starting task: {task_input}")

    def phase_change(self, phase: str, step: Optional[int] = None):
        """Switch phase; logged at DEBUG since every step repeats it."""
        self.set_task_context(phase=phase)
        if step is not None:
            self.debug(f"Phase: {phase} (step {step})")
        else:
            self.debug(f"Phase: {phase}")

    def task_finished(self, outcome: str, steps: int, duration_seconds: float):
        self.info(f"Task finished: {outcome} after {steps} step(s) in {duration_seconds:.1f}s")
        self.current_phase = None


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    use_colors: Optional[bool] = None,
) -> None:
    """
    Configure root logging for the orchestrator process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives the same records without ANSI codes
        use_colors: Force colors on/off; defaults to whether stderr is a TTY
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)

    if use_colors is None:
        use_colors = sys.stderr.isatty() if hasattr(sys.stderr, "isatty") else False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(TaskLogFormatter(use_colors=use_colors))
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(TaskLogFormatter(use_colors=False))
        root.addHandler(file_handler)

    # litellm is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
