"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    TSHARK_PATH=/usr/local/bin/tshark
    DECODER=scapy
    LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DECODERS = ("tshark", "scapy")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Decoding
    DECODER: str = "tshark"
    TSHARK_PATH: str = "tshark"
    DISPLAY_FILTER: str = "tcp"
    TSHARK_TIMEOUT_SECONDS: int = 300

    # Output
    INCLUDE_PACKETS: bool = True
    JSON_INDENT: int = 2

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("DECODER", mode="before")
    @classmethod
    def normalise_decoder(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in _DECODERS:
                raise ValueError(f"DECODER must be one of {_DECODERS}, got {v!r}")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in LOG_LEVELS:
                raise ValueError(f"LOG_LEVEL must be one of {LOG_LEVELS}, got {v!r}")
        return v


settings = Settings()
