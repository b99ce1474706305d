"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Completion API configuration."""

    model: str = Field(
        default="deepseek/deepseek-chat",
        description="LiteLLM model string, e.g. 'deepseek/deepseek-chat', 'openai/gpt-4o-mini'. "
                    "The provider prefix tells LiteLLM which API to route the request to.",
    )
    api_key: str = Field(default="", description="API key for the model's provider")
    api_base: str | None = Field(
        default=None,
        description="Override the provider base URL (e.g. https://api.deepseek.com/v1)",
    )
    temperature: float | None = Field(default=None, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, description="Maximum tokens in response")

    # Retry behaviour for the completion endpoint
    max_attempts: int = Field(default=3, ge=1, description="Total attempts per completion call")
    retry_base_delay: float = Field(
        default=2.0, ge=0, description="Backoff base delay in seconds (doubled per attempt)"
    )
    retry_jitter: float = Field(
        default=0.25, ge=0, description="Upper bound of the random jitter added to each delay"
    )
    retryable_status_codes: list[int] = Field(
        default_factory=lambda: [404, 429, 500, 502, 503],
        description="HTTP status codes that are retried. Anything else fails immediately.",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class AgentSettings(BaseSettings):
    """Orchestration loop configuration."""

    max_iterations: int = Field(
        default=10, ge=1, description="Maximum tool-execution rounds per conversational turn"
    )
    history_turns: int = Field(
        default=20, ge=0, description="How many past conversation turns are sent to the model"
    )
    max_tool_result_chars: int = Field(
        default=5000, gt=0, description="Tool results longer than this are truncated"
    )
    turn_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Wall-clock limit in seconds for a whole turn. None disables the deadline.",
    )
    parallel_tool_calls: bool = Field(
        default=False,
        description="Run the tool calls of one iteration concurrently. Leave off when "
                    "side effects (e.g. emails) must happen in the order the model asked.",
    )

    model_config = SettingsConfigDict(env_prefix="AGENT_")


class ToolSettings(BaseSettings):
    """Tool registry and tool handler configuration."""

    cache_ttl: float = Field(
        default=60.0, ge=0, description="Seconds a loaded tool catalog stays valid"
    )
    tool_timeout: float | None = Field(
        default=None, gt=0, description="Per-tool execution limit in seconds (None = no limit)"
    )
    search_default_limit: int = Field(
        default=10, ge=1, description="searchProducts limit when the model does not pass one"
    )
    search_display_limit: int = Field(
        default=5, ge=1, description="How many search hits are rendered for the model"
    )
    sale_email_recipient: str = Field(
        default="", description="Address that receives sale confirmation emails"
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class EmailSettings(BaseSettings):
    """SMTP configuration for sale notifications."""

    smtp_host: str = Field(default="", description="SMTP server host. Empty = log emails only.")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_user: str = Field(default="", description="SMTP login (also used as sender address)")
    smtp_password: str = Field(default="", description="SMTP password / app password")
    sender_name: str = Field(default="Tu tienda", description="Display name for outgoing mail")
    use_tls: bool = Field(default=True, description="Upgrade the connection with STARTTLS")

    model_config = SettingsConfigDict(env_prefix="EMAIL_")


class ImportSettings(BaseSettings):
    """Bulk product import configuration."""

    max_retries: int = Field(default=3, ge=1, description="Attempts per record")
    initial_delay: float = Field(default=0.5, ge=0, description="First backoff delay in seconds")
    backoff_factor: float = Field(default=2.0, ge=1, description="Delay multiplier per attempt")
    jitter: float = Field(default=0.1, ge=0, description="Random jitter upper bound in seconds")

    model_config = SettingsConfigDict(env_prefix="IMPORT_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    importer: ImportSettings = Field(default_factory=ImportSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
