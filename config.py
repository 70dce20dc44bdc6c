"""
Process-wide configuration

Read once from the environment at import time. Everything else in the app
takes its settings from `settings` instead of calling os.getenv itself.
"""
import logging
import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: Optional[str] = None
    database_name: Optional[str] = None
    jwt_secret: str = Field("dev-secret-change-me", description="Token signing key")
    jwt_algorithm: str = "HS256"
    token_expire_minutes: int = Field(60, gt=0)
    bcrypt_rounds: int = Field(10, ge=4, le=31, description="bcrypt work factor")
    upload_dir: str = "uploads"
    max_upload_files: int = Field(50, gt=0)
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_algorithm": os.getenv("JWT_ALGORITHM"),
            "token_expire_minutes": os.getenv("TOKEN_EXPIRE_MINUTES"),
            "bcrypt_rounds": os.getenv("BCRYPT_ROUNDS"),
            "upload_dir": os.getenv("UPLOAD_DIR"),
            "max_upload_files": os.getenv("MAX_UPLOAD_FILES"),
            "log_level": os.getenv("LOG_LEVEL"),
            "port": os.getenv("PORT"),
        }
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = _split(origins)
        return cls(**{k: v for k, v in values.items() if v is not None})


settings = Settings.from_env()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
