"""
Configuration settings for the MealMate backend.
Uses pydantic-settings for type-safe environment variable management.
"""
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Info
    app_name: str = "MealMate API"
    app_version: str = "1.0.0"
    git_commit: Optional[str] = None  # Git commit hash from environment
    debug: bool = False

    # Database
    database_url: str

    # Security (tokens are issued upstream; we only verify them)
    secret_key: str
    algorithm: str = "HS256"

    # CORS - comma-separated list in environment variable
    # Example: CORS_ORIGINS="http://localhost:5173,http://localhost:3000"
    cors_origins_str: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        validation_alias="CORS_ORIGINS"
    )

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # OpenAI
    openai_api_key: Optional[str] = None
    # Optional model id from env (e.g., model_id=gpt-4o)
    model_id: Optional[str] = None
    model_temperature: float = 0.2

    # Agent
    agent_turn_timeout_seconds: float = 60.0  # deadline applied to one chat turn
    history_window: int = 10  # trailing turns included in the prompt

    # Email Configuration (using Brevo HTTP API)
    brevo_api_key: Optional[str] = None
    email_from: Optional[str] = None  # must be a verified Brevo sender
    email_from_name: str = "MealMate"

    # Frontend URL (for report links)
    frontend_url: str = "http://localhost:3000"

    # Pydantic v2 settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars so unexpected keys don't crash
        protected_namespaces=("settings_",),
    )


# Global settings instance
settings = Settings()
