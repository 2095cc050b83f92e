"""
Folio configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # R2 / S3 Storage (uploaded images)
    R2_ENDPOINT: str = os.environ.get("R2_ENDPOINT", "")
    R2_ACCESS_KEY: str = os.environ.get("R2_ACCESS_KEY", "")
    R2_SECRET_KEY: str = os.environ.get("R2_SECRET_KEY", "")
    R2_ASSET_BUCKET: str = os.environ.get("R2_ASSET_BUCKET", "folio-assets")
    R2_PUBLIC_URL: str = os.environ.get("R2_PUBLIC_URL", "https://assets.folio.dev")
    MAX_UPLOAD_BYTES: int = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Auth
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_HOURS: int = 24 * 7

    # Guest editing
    GUEST_SESSION_TTL_HOURS: int = int(os.environ.get("GUEST_SESSION_TTL_HOURS", "24"))
    GUEST_STORAGE_QUOTA_BYTES: int = int(os.environ.get("GUEST_STORAGE_QUOTA_BYTES", str(5 * 1024 * 1024)))

    # AI images
    OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "")
    IMAGE_MODEL: str = os.environ.get("IMAGE_MODEL", "gpt-image-1")
    IMAGE_SIZE: str = os.environ.get("IMAGE_SIZE", "1024x1024")

    # Monthly AI generations per plan
    AI_LIMIT_FREE: int = 10
    AI_LIMIT_PRO_SPRINT: int = 100
    AI_LIMIT_PRO_MONTHLY: int = 300

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    def ai_limit_for(self, plan: str | None) -> int:
        if plan == "pro_sprint":
            return self.AI_LIMIT_PRO_SPRINT
        if plan == "pro_monthly":
            return self.AI_LIMIT_PRO_MONTHLY
        return self.AI_LIMIT_FREE


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
if not settings.JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")

if not _testing:
    if not settings.R2_ENDPOINT:
        raise RuntimeError("R2_ENDPOINT environment variable is required")
    if not settings.R2_ACCESS_KEY:
        raise RuntimeError("R2_ACCESS_KEY environment variable is required")
    if not settings.R2_SECRET_KEY:
        raise RuntimeError("R2_SECRET_KEY environment variable is required")
    if not settings.OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY environment variable is required")
