"""Application settings for the laptop grading service."""

import json
import os
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError


MIB = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "LapGrade"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Vision model provider
    LLM_PROVIDER: Literal["openai", "gemini"] = "openai"
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    GEMINI_API_KEY: str | None = None
    VISION_MODEL: str = "gpt-4o"
    MODEL_TIMEOUT_SECONDS: float = 60.0
    MODEL_TEMPERATURE: float = 0.1
    MODEL_MAX_OUTPUT_TOKENS: int = 1200

    # Video decoder (ffmpeg / ffprobe)
    FFMPEG_BINARY: str = "ffmpeg"
    FFPROBE_BINARY: str = "ffprobe"
    DECODER_TIMEOUT_SECONDS: float = 60.0
    VIDEO_FRAME_COUNT: int = 3

    # Upload limits
    MAX_UPLOAD_FILES: int = 5
    MAX_BATCH_UPLOAD_FILES: int = 10
    MAX_UPLOAD_BYTES: int = 50 * MIB
    MIN_IMAGE_BYTES: int = 100

    # Image normalization
    IMAGE_JPEG_QUALITY: int = 95
    IMAGE_MAX_DIMENSION: int = 2048

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("VIDEO_FRAME_COUNT", "MAX_UPLOAD_FILES", "MAX_BATCH_UPLOAD_FILES")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    def model_api_key(self) -> str | None:
        """Return the credential for the configured vision provider."""
        if self.LLM_PROVIDER == "gemini":
            return self.GEMINI_API_KEY
        return self.OPENAI_API_KEY

    def require_model_credentials(self) -> None:
        """Fail loudly when the vision provider credential is missing."""
        if not self.model_api_key():
            key_name = (
                "GEMINI_API_KEY" if self.LLM_PROVIDER == "gemini" else "OPENAI_API_KEY"
            )
            raise ConfigurationError(
                f"{key_name} environment variable is required "
                f"(LLM_PROVIDER={self.LLM_PROVIDER})"
            )


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
