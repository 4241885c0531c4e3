import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


_VALID_ENGINE_PROVIDERS = {"memory", "custom"}
_VALID_LOG_FORMATS = {"json", "text"}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class EngineConfig(BaseModel):
    """Which memory engine backs the gateway."""
    provider: str = Field(default="memory")
    path: Optional[str] = None  # "package.module:attr" for provider=custom
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("provider")
    @classmethod
    def _valid_provider(cls, v: str) -> str:
        v = str(v).strip().lower()
        if v not in _VALID_ENGINE_PROVIDERS:
            raise ValueError(f"Unknown engine provider '{v}'. Valid: {sorted(_VALID_ENGINE_PROVIDERS)}")
        return v

    @model_validator(mode="after")
    def _custom_needs_path(self) -> "EngineConfig":
        if self.provider == "custom":
            if not self.path or ":" not in self.path:
                raise ValueError("engine provider 'custom' requires path in the form 'package.module:attr'")
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def _valid_level(cls, v: str) -> str:
        v = str(v).strip().upper()
        if v not in _VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}'. Valid: {sorted(_VALID_LOG_LEVELS)}")
        return v

    @field_validator("format")
    @classmethod
    def _valid_format(cls, v: str) -> str:
        v = str(v).strip().lower()
        if v not in _VALID_LOG_FORMATS:
            raise ValueError(f"Unknown log format '{v}'. Valid: {sorted(_VALID_LOG_FORMATS)}")
        return v


class GatewayConfig(BaseModel):
    server_name: str = "ltm-gateway"
    server_version: str = "1.0.0"
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    shutdown_timeout_seconds: float = 5.0
    conversation_participants: List[str] = Field(default_factory=lambda: ["user", "claude"])

    @field_validator("shutdown_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        v = float(v)
        if v <= 0:
            raise ValueError(f"shutdown_timeout_seconds must be > 0, got {v}")
        return v

    @field_validator("conversation_participants")
    @classmethod
    def _non_empty_roster(cls, v: List[str]) -> List[str]:
        roster = [str(p).strip() for p in v if str(p).strip()]
        if not roster:
            raise ValueError("conversation_participants must name at least one participant")
        return roster

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "GatewayConfig":
        """Build a config from LTM_GATEWAY_* environment variables."""
        env = os.environ if environ is None else environ
        engine = EngineConfig(
            provider=env.get("LTM_GATEWAY_ENGINE", "memory"),
            path=env.get("LTM_GATEWAY_ENGINE_PATH") or None,
        )
        logging_config = LoggingConfig(
            level=env.get("LTM_GATEWAY_LOG_LEVEL", "INFO"),
            format=env.get("LTM_GATEWAY_LOG_FORMAT", "json"),
        )
        return cls(
            server_name=env.get("LTM_GATEWAY_SERVER_NAME", "ltm-gateway"),
            engine=engine,
            logging=logging_config,
            shutdown_timeout_seconds=float(env.get("LTM_GATEWAY_SHUTDOWN_TIMEOUT", "5.0")),
        )
