"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/app/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "SailSmart"
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    secret_key: str = Field(..., description="Secret key for encryption")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )
    public_base_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the web app, used for links in emails"
    )

    # Logging
    log_format: str = Field(default="json", description="'json' (one object per line) or 'text'")
    log_sqlalchemy: bool = Field(default=False, description="Log every SQL statement")
    log_uvicorn_access: bool = Field(default=False, description="Keep uvicorn's own access log")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='JSON map of logger name to level, e.g. {"app.services.llm_client": "DEBUG"}'
    )
    log_file_enabled: bool = Field(default=False, description="Also write logs to a rotating file")
    log_file_path: str = Field(default="logs/sailsmart.log", description="Relative paths resolve from the repo root")
    log_file_rotation: str = Field(default="midnight", description="'midnight' or a weekday 'W0'..'W6'")
    log_file_retention: int = Field(default=30, ge=1, description="Rotated files to keep")
    log_sensitive_data: bool = Field(
        default=False,
        description="Disable masking of credentials and crew contact details (local debugging only)"
    )

    # Database
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_db: str = Field(default="sailsmart", description="PostgreSQL database name")
    postgres_user: str = Field(default="sailsmart", description="PostgreSQL user")
    postgres_password: str = Field(default="", description="PostgreSQL password")
    postgres_port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    database_pool_size: int = Field(default=20, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")
    database_url_override: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; takes precedence over the postgres_* settings (e.g. sqlite://)"
    )

    # Auth
    auth_session_hours: int = Field(default=24, ge=1, description="Login session lifetime in hours")
    auth_cookie_name: str = Field(default="session_token", description="Cookie holding the login token")
    cookie_secure: bool = Field(default=False, description="Mark cookies as Secure (enable behind HTTPS)")

    # Onboarding sessions
    onboarding_session_days: int = Field(
        default=7,
        ge=1,
        description="Lifetime of anonymous owner/prospect onboarding sessions in days"
    )

    # LLM
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API"
    )
    llm_api_key: Optional[str] = Field(default=None, description="API key for the LLM provider")
    llm_model: str = Field(default="gpt-4o-mini", description="Model name sent to the LLM provider")
    llm_timeout_seconds: int = Field(
        default=60,
        ge=5,
        le=300,
        description="Maximum time to wait for an LLM response (seconds)"
    )
    llm_max_tokens: int = Field(
        default=2000,
        ge=50,
        le=8000,
        description="Maximum number of tokens in an LLM response"
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Default sampling temperature"
    )
    llm_max_retries: int = Field(
        default=5,
        ge=0,
        le=10,
        description="Retries for rate-limited LLM calls"
    )
    llm_retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay for exponential backoff between LLM retries"
    )
    llm_rate_limit_requests: int = Field(
        default=120,
        ge=1,
        description="Maximum LLM requests per window"
    )
    llm_rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Sliding window size for LLM rate limiting (seconds)"
    )

    # Email
    email_api_url: str = Field(
        default="https://api.resend.com/emails",
        description="Transactional email API endpoint"
    )
    email_api_key: Optional[str] = Field(
        default=None,
        description="Transactional email API key; sending is disabled when empty"
    )
    email_from: str = Field(
        default="SailSmart <notifications@sailsmart.app>",
        description="Sender address for notification emails"
    )

    @property
    def database_url(self) -> str:
        """Construct database URL"""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key and self.llm_base_url)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_api_key)

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
