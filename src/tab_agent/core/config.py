"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class ProviderConfig(BaseModel):
    """One interchangeable language-model backend."""
    name: str = "anthropic"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    timeout: int = 120

    # Per-role model overrides (planner, navigator, validator, router);
    # roles not listed fall back to ModelSelector defaults for the provider
    models: Dict[str, str] = Field(default_factory=dict)

    @field_validator('api_base')
    @classmethod
    def validate_api_base(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(
                f"api_base must start with http:// or https://, got '{v}'"
            )
        return v


class RetryConfig(BaseModel):
    """Provider retry/fallback settings."""
    max_attempts: int = 3
    base_delay_seconds: float = 1.0

    @field_validator('max_attempts')
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}")
        return v


class LLMConfig(BaseModel):
    """LLM configuration."""
    providers: List[ProviderConfig] = Field(default_factory=lambda: [ProviderConfig()])
    retry: RetryConfig = Field(default_factory=RetryConfig)

    # Token caps per agent role
    max_tokens: Dict[str, int] = Field(default_factory=lambda: {
        "planner": 800,
        "navigator": 500,
        "validator": 750,
        "router": 1500,
    })
    temperature: float = 0.7

    @field_validator('providers')
    @classmethod
    def validate_providers(cls, v: List[ProviderConfig]) -> List[ProviderConfig]:
        if not v:
            raise ValueError("At least one provider must be configured")
        return v


class ExecutionConfig(BaseModel):
    """Execution loop settings."""
    max_steps: int = 15
    step_delay_seconds: float = 1.0
    task_timeout_seconds: float = 300.0  # 0 disables the wall-clock limit
    fallback_wait_ms: int = 1000
    validation_policy: Literal["lenient", "standard", "strict"] = "standard"
    enable_task_router: bool = False

    @field_validator('max_steps')
    @classmethod
    def validate_max_steps(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_steps must be >= 1, got {v}")
        return v


class MemoryConfig(BaseModel):
    """Procedural memory sizes."""
    window_size: int = 10
    compress_batch: int = 4
    retain_after_compress: int = 6
    summary_capacity: int = 3
    context_recent: int = 3

    @model_validator(mode='after')
    def validate_sizes(self) -> 'MemoryConfig':
        if self.compress_batch < 1 or self.summary_capacity < 1:
            raise ValueError("compress_batch and summary_capacity must be >= 1")
        if self.retain_after_compress >= self.window_size:
            raise ValueError(
                f"retain_after_compress ({self.retain_after_compress}) must be smaller "
                f"than window_size ({self.window_size})"
            )
        if self.compress_batch > self.window_size:
            raise ValueError("compress_batch cannot exceed window_size")
        return self


class BroadcastConfig(BaseModel):
    """Connection and replay settings."""
    replay_capacity: int = 20
    replay_on_attach: int = 3
    pending_capacity: int = 50


class TaskManagerConfig(BaseModel):
    """Task lifecycle settings."""
    max_concurrent_tasks: int = 2
    message_log_limit: int = 100
    start_delay_seconds: float = 0.1
    # Finished tasks kept for status lookups; oldest are evicted first
    terminal_task_limit: int = 200

    @field_validator('max_concurrent_tasks', 'message_log_limit', 'terminal_task_limit')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be >= 1, got {v}")
        return v


class BrowserConfig(BaseModel):
    """Page driver wiring."""
    # Import string "package.module:callable" returning a PageDriver
    driver_factory: Optional[str] = None

    @field_validator('driver_factory')
    @classmethod
    def validate_factory(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and ":" not in v:
            raise ValueError(
                f"driver_factory must look like 'package.module:callable', got '{v}'"
            )
        return v


class ServerConfig(BaseModel):
    """Websocket server settings."""
    host: str = "127.0.0.1"
    port: int = 8765
    cors_origins: List[str] = Field(default_factory=list)
    log_level: str = "INFO"
    log_file: Optional[Path] = None


class OrchestratorConfig(BaseSettings):
    """Main orchestrator configuration."""
    llm: LLMConfig = Field(default_factory=LLMConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    tasks: TaskManagerConfig = Field(default_factory=TaskManagerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    class Config:
        env_prefix = "TAB_AGENT_"
        env_file = ".env"
        env_nested_delimiter = "__"
        extra = "allow"


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> OrchestratorConfig:
    """Internal loader for orchestrator config (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    data = _expand_env_vars(data)
    return OrchestratorConfig(**data)


def load_config(config_path: Path = Path("tab-agent.yaml")) -> OrchestratorConfig:
    """Load orchestrator configuration from YAML file.

    Uses mtime-based caching; returns cached config if the file hasn't changed.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration. "
            "To customize settings, create a config file at this path."
        )
        return OrchestratorConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else OrchestratorConfig()


def clear_config_cache() -> None:
    """Drop all cached configs (used by tests)."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${ENV_VAR} strings in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "llm.providers[0].api_key")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
