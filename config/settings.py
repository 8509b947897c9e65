# PRAgent/config/settings.py

import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
ENV_FILE_PATH = os.path.join(PROJECT_ROOT, '.env')


class ConfigurationError(RuntimeError):
    """Raised when a required setting (such as the inference credential) is missing."""


class Settings(BaseSettings):
    anthropic_api_key: Optional[str] = Field(default=None, env="ANTHROPIC_API_KEY")
    inference_base_url: str = Field(
        default="https://api.anthropic.com", env="INFERENCE_BASE_URL"
    )
    inference_model: str = Field(
        default="claude-sonnet-4-20250514", env="INFERENCE_MODEL"
    )
    inference_api_version: str = Field(
        default="2023-06-01", env="INFERENCE_API_VERSION"
    )
    # One timeout per request, no automatic retry.
    inference_timeout: float = Field(default=90.0, env="INFERENCE_TIMEOUT")
    classification_max_tokens: int = Field(
        default=8192, env="CLASSIFICATION_MAX_TOKENS"
    )
    negotiation_max_tokens: int = Field(default=1024, env="NEGOTIATION_MAX_TOKENS")
    negotiation_reference_limit: int = Field(
        default=10, env="NEGOTIATION_REFERENCE_LIMIT"
    )

    po_number_prefix: str = Field(default="PO", env="PO_NUMBER_PREFIX")
    hitl_lock_timeout: float = Field(default=5.0, env="HITL_LOCK_TIMEOUT")

    reference_data_dir: str = Field(
        default=os.path.join(PROJECT_ROOT, "resources", "reference_data"),
        env="REFERENCE_DATA_DIR",
    )
    log_dir: str = Field(default=os.path.join(PROJECT_ROOT, "logs"), env="LOG_DIR")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    class Config:
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'
        extra = "ignore"

    @field_validator("negotiation_reference_limit")
    @classmethod
    def _cap_reference_limit(cls, value: int) -> int:
        """The negotiation analyzer never looks at more than ten price entries."""

        return max(0, min(int(value), 10))

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def _blank_key_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def require_api_key(self) -> str:
        if not self.anthropic_api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY not configured; set it in the environment or .env file."
            )
        return self.anthropic_api_key


try:
    settings = Settings()
except Exception as e:
    print(f"!!! FATAL ERROR: Could not load application settings from .env file: {e}")
    raise
