"""
Configuration settings for the KYC onboarding form engine.
Uses pydantic-settings for environment variable management.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = Field("KYC Onboarding Form", description="Application display name")
    APP_VERSION: str = Field("1.0.0", description="Version recorded in submission audit logs")
    DEBUG: bool = Field(False, description="Enable debug mode")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")

    # Server Configuration
    HOST: str = Field("0.0.0.0", description="Server host")
    PORT: int = Field(8000, description="Server port")

    # Draft Auto-Save
    AUTOSAVE_DEBOUNCE_SECONDS: float = Field(
        2.0,
        description="Quiet period after the last form change before a draft is written"
    )
    DRAFT_KEY_PREFIX: str = Field("kycDraft_", description="Local storage key prefix for drafts")
    LOCAL_STORE_DIR: Optional[str] = Field(
        None,
        description="Directory for on-disk drafts (in-memory storage when unset)"
    )

    # Rate Limiting
    SUBMIT_MAX_ATTEMPTS: int = Field(3, description="Form submissions allowed per window")
    SUBMIT_WINDOW_MINUTES: int = Field(10, description="Form submission window in minutes")
    SIGN_IN_MAX_ATTEMPTS: int = Field(5, description="Sign-in attempts allowed per window")
    SIGN_IN_WINDOW_MINUTES: int = Field(15, description="Sign-in window in minutes")

    # Authentication
    AUTH_USERS: str = Field(
        "",
        description="Seed accounts as comma separated email:password pairs"
    )

    # Uploads
    MAX_UPLOAD_SIZE_MB: int = Field(10, description="Maximum signature/upload size in MB")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def parse_auth_users(raw: str) -> dict[str, str]:
    """Parse ``email:password`` pairs from the AUTH_USERS setting."""
    users = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if ":" in pair:
            email, password = pair.split(":", 1)
            users[email.strip()] = password.strip()
    return users


def validate_settings() -> tuple[bool, list[str]]:
    """
    Validate runtime settings.
    Returns (is_valid, list of invalid settings).
    """
    issues = []

    try:
        s = settings

        if s.AUTOSAVE_DEBOUNCE_SECONDS <= 0:
            issues.append("AUTOSAVE_DEBOUNCE_SECONDS must be positive")

        if s.SUBMIT_MAX_ATTEMPTS < 1 or s.SUBMIT_WINDOW_MINUTES < 1:
            issues.append("Submission rate limit must allow at least one attempt per minute window")

        if s.SIGN_IN_MAX_ATTEMPTS < 1 or s.SIGN_IN_WINDOW_MINUTES < 1:
            issues.append("Sign-in rate limit must allow at least one attempt per minute window")

        if s.LOCAL_STORE_DIR and Path(s.LOCAL_STORE_DIR).is_file():
            issues.append(f"LOCAL_STORE_DIR points to a file: {s.LOCAL_STORE_DIR}")

    except Exception as e:
        issues.append(f"Configuration error: {str(e)}")

    return len(issues) == 0, issues


# Load .env from project root
env_path = get_project_root() / ".env"
if env_path.exists():
    from dotenv import load_dotenv
    load_dotenv(env_path)

# Global settings instance
settings = Settings()
