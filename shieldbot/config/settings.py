"""shieldbot configuration via environment / .env file."""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Storage ---
    AUTH_DIR: str = "./auth"
    PLUGINS_DIR: str = "./plugins"
    LEDGER_PATH: str = "./.seen_jids.json"

    # --- Pairing ---
    PAIRING_PROMPT: bool = True

    # --- First contact ---
    AUTO_INVITE_LINK: str = "https://chat.whatsapp.com/YOUR_INVITE_LINK"
    INVITE_TEMPLATE: str = (
        "Hello! Thanks for your message. Join my channel / group:\n{link}"
    )

    # --- Anti-spam ---
    ANTISPAM_MAX_MESSAGES: int = 5
    ANTISPAM_WINDOW_SECONDS: float = 10.0
    ANTISPAM_WARNING: str = "⚠️ *ANTI SPAM ACTIVE* Please slow down a little."

    # --- Reconnect ---
    RECONNECT_DELAY_MS: int = 2500
    RECONNECT_BACKOFF_FACTOR: float = 2.0
    RECONNECT_MAX_DELAY_MS: int = 60000
    RECONNECT_MAX_ATTEMPTS: int = 0

    # --- Shield / sanitizer ---
    SHIELD_MAX_TEXT_LENGTH: int = 20000
    SHIELD_MAX_DEPTH: int = 10
    SHIELD_MAX_MENTIONS: int = 256
    SANITIZER_MAX_TEXT_LENGTH: int = 4096

    # --- Protocol collaborator ("package.module:factory") ---
    PROTOCOL_CLIENT: str = ""

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level == "WARN":
            level = "WARNING"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @field_validator("PROTOCOL_CLIENT")
    @classmethod
    def _check_protocol_client(cls, v: str) -> str:
        if v and v.count(":") != 1:
            raise ValueError("PROTOCOL_CLIENT must look like 'package.module:factory'")
        return v

    @property
    def invite_text(self) -> str:
        return self.INVITE_TEMPLATE.format(link=self.AUTO_INVITE_LINK)


settings = Settings()
