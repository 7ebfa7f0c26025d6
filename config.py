"""
Configuration settings for the mastery orchestration service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Judge (Claude)
    # ========================================
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for the judge model (server side only)",
    )
    judge_model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Claude model used for mastery evaluation",
    )
    judge_api_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the judge proxy (serves /api/claude/evaluate)",
    )
    anthropic_messages_url: str = Field(
        default="https://api.anthropic.com/v1/messages",
        description="Upstream Anthropic Messages endpoint used by the proxy",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="anthropic-version header sent by the proxy",
    )
    judge_timeout_ms: int = Field(
        default=30000,
        description="Judge request timeout in milliseconds",
    )
    judge_retry_attempts: int = Field(
        default=3,
        description="Attempts per judge request before falling back",
    )
    judge_max_tokens: int = Field(
        default=500,
        description="max_tokens for judge completions",
    )
    judge_temperature: float = Field(
        default=0.3,
        description="Sampling temperature for judge completions",
    )

    # ========================================
    # Orchestration (client side)
    # ========================================
    orchestration_server_url: str | None = Field(
        default="ws://localhost:3001/orchestrate",
        description="WebSocket URL of the orchestration server (None for client-only)",
    )
    orchestration_mode: Literal["server", "client", "hybrid"] = Field(
        default="hybrid",
        description="Preferred backend; hybrid tries the server then falls back",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Handshake + init deadline for the orchestration server",
    )
    max_reconnect_attempts: int = Field(
        default=5,
        description="Reconnect attempts before giving up",
    )
    reconnect_delay_seconds: float = Field(
        default=1.0,
        description="Base reconnect delay (doubled per attempt)",
    )
    client_eval_cooldown_ms: int = Field(
        default=10000,
        description="Minimum gap between local evaluation requests",
    )
    duplicate_window_ms: int = Field(
        default=5000,
        description="Server evaluations within this window of the last one are dropped",
    )

    # ========================================
    # Orchestration (server side)
    # ========================================
    server_eval_cooldown_ms: int = Field(
        default=8000,
        description="Minimum gap between server evaluations for one session",
    )
    session_timeout_minutes: int = Field(
        default=30,
        description="Idle sessions without a socket are dropped after this",
    )
    session_cleanup_interval_seconds: int = Field(
        default=300,
        description="How often stale server sessions are swept",
    )

    # ========================================
    # Session Persistence
    # ========================================
    enable_persistence: bool = Field(
        default=True,
        description="Persist client session snapshots",
    )
    session_store_backend: Literal["memory", "file", "sql"] = Field(
        default="file",
        description="Key-value backend for session snapshots",
    )
    session_dir: str | None = Field(
        default=None,
        description="Directory for file-backed sessions (default ~/.mastery/sessions)",
    )
    database_url: str = Field(
        default="sqlite:///mastery_sessions.db",
        description="SQLAlchemy URL for the sql session backend",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=3001,
        description="API server port",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_judge_configured(self) -> bool:
        """Check if the server can reach Claude directly."""
        return bool(self.anthropic_api_key)

    def has_server_configured(self) -> bool:
        """Check if an orchestration server is configured for the client."""
        return bool(self.orchestration_server_url) and self.orchestration_mode != "client"

    def get_reconnect_config(self) -> dict[str, float | int]:
        """Get WebSocket reconnection settings as a dictionary."""
        return {
            "connect_timeout": self.connect_timeout_seconds,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "reconnect_delay": self.reconnect_delay_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
