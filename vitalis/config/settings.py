"""Application settings loaded from the environment."""

import os
from typing import Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()

DEFAULT_AI_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_AI_MODEL = "google/gemini-2.5-pro"

# Global settings instance
_settings = None


class Settings(BaseModel):
    """Runtime configuration for the report analyzer."""

    ai_api_key: Optional[str] = Field(default=None, description="Bearer token for the chat-completion service")
    ai_api_url: str = Field(default=DEFAULT_AI_API_URL, description="Chat-completion endpoint")
    ai_model: str = Field(default=DEFAULT_AI_MODEL, description="Model identifier sent with each request")
    ai_timeout_seconds: float = Field(default=120.0, description="HTTP timeout for the AI call")
    ai_temperature: float = Field(default=0.1, description="Sampling temperature")
    ai_max_tokens: int = Field(default=4000, description="Completion token limit")
    enable_ai_analysis: bool = Field(default=True, description="Disable to always use the rule-based analyzer")
    site_url: str = Field(default="https://vitalis-health.app", description="Sent as HTTP-Referer")
    site_name: str = Field(default="Vitalis Report Analyzer", description="Sent as X-Title")
    log_level: str = Field(default="INFO", description="Root logging level")
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, description="Largest accepted upload")

    @property
    def ai_enabled(self) -> bool:
        return self.enable_ai_analysis and bool(self.ai_api_key)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Build a Settings object from the current environment."""
    api_key = os.getenv("AI_API_KEY") or os.getenv("OPEN_ROUTER_API_KEY")
    if api_key:
        # Strip whitespace
        api_key = api_key.strip() or None

    return Settings(
        ai_api_key=api_key,
        ai_api_url=os.getenv("AI_API_URL", DEFAULT_AI_API_URL).strip(),
        ai_model=os.getenv("AI_MODEL", DEFAULT_AI_MODEL).strip(),
        ai_timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", "120")),
        ai_temperature=float(os.getenv("AI_TEMPERATURE", "0.1")),
        ai_max_tokens=int(os.getenv("AI_MAX_TOKENS", "4000")),
        enable_ai_analysis=_env_bool("ENABLE_AI_ANALYSIS", True),
        site_url=os.getenv("SITE_URL", "https://vitalis-health.app"),
        site_name=os.getenv("SITE_NAME", "Vitalis Report Analyzer"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024))),
    )


def get_settings() -> Settings:
    """Get the settings instance, loading it on first use."""
    global _settings

    if _settings is None:
        _settings = load_settings()

    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
