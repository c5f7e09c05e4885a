"""
Annotation service configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os
from pathlib import Path


class Settings:
    """Application settings from environment variables."""

    # AI provider
    ANTHROPIC_API_KEY: str = os.environ.get("ANTHROPIC_API_KEY", "")
    ANNOTATION_MODEL: str = os.environ.get("ANNOTATION_MODEL", "claude-sonnet-4-20250514")
    ANNOTATION_MAX_TOKENS: int = int(os.environ.get("ANNOTATION_MAX_TOKENS", "1024"))

    # Tutorial documents (one <id>.json per tutorial)
    CONTENT_DIR: Path = Path(os.environ.get("CONTENT_DIR", "content"))

    # Where engine sessions reach this service
    ANNOTATION_SERVER_URL: str = os.environ.get("ANNOTATION_SERVER_URL", "http://localhost:5190")

    # Browsers loading tutorials from another origin
    CORS_ORIGINS: list[str] = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    @property
    def AI_PROVIDER(self) -> str:
        return "Anthropic Direct"


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if not _testing:
    if not settings.ANTHROPIC_API_KEY:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is required")
