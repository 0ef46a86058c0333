# backend/stockledger/config.py
from __future__ import annotations

import os
from dataclasses import dataclass

from flask import current_app


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Environment-driven configuration.

    Read when create_app() runs (not at import time) so tests and CLI
    invocations can point DATABASE_URL somewhere else before building the app.
    """

    def __init__(self) -> None:
        self.SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

        # SQLite DB stored in backend/instance/stockledger.sqlite3
        self.SQLALCHEMY_DATABASE_URI = os.environ.get(
            "DATABASE_URL",
            "sqlite:///stockledger.sqlite3",
        )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False

        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

        self.LEDGER_ALLOW_PAYMENT_REVERSAL = _env_bool("LEDGER_ALLOW_PAYMENT_REVERSAL", True)
        self.LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
        self.LEDGER_RETRY_BACKOFF_BASE = float(os.environ.get("LEDGER_RETRY_BACKOFF_BASE", "0.1"))
        self.LEDGER_PURGE_TIMEOUT_SECONDS = int(os.environ.get("LEDGER_PURGE_TIMEOUT_SECONDS", "300"))
        self.LEDGER_DEFAULT_SERIES_PADDING = int(os.environ.get("LEDGER_DEFAULT_SERIES_PADDING", "6"))
        self.LEDGER_FISCAL_ISSUER_NAME = os.environ.get("LEDGER_FISCAL_ISSUER_NAME")
        self.LEDGER_FISCAL_ISSUER_TAX_ID = os.environ.get("LEDGER_FISCAL_ISSUER_TAX_ID")


@dataclass(frozen=True)
class LedgerSettings:
    """
    Ledger-wide policy, loaded once per application.

    Replaces ad-hoc reads of a global settings row: services receive this
    object explicitly or look it up on the current app.
    """
    allow_payment_reversal: bool = True
    retry_attempts: int = 3
    retry_backoff_base: float = 0.1
    purge_timeout_seconds: int = 300
    default_series_padding: int = 6
    fiscal_issuer_name: str | None = None
    fiscal_issuer_tax_id: str | None = None

    @classmethod
    def from_mapping(cls, config) -> "LedgerSettings":
        return cls(
            allow_payment_reversal=bool(config.get("LEDGER_ALLOW_PAYMENT_REVERSAL", True)),
            retry_attempts=int(config.get("LEDGER_RETRY_ATTEMPTS", 3)),
            retry_backoff_base=float(config.get("LEDGER_RETRY_BACKOFF_BASE", 0.1)),
            purge_timeout_seconds=int(config.get("LEDGER_PURGE_TIMEOUT_SECONDS", 300)),
            default_series_padding=int(config.get("LEDGER_DEFAULT_SERIES_PADDING", 6)),
            fiscal_issuer_name=config.get("LEDGER_FISCAL_ISSUER_NAME"),
            fiscal_issuer_tax_id=config.get("LEDGER_FISCAL_ISSUER_TAX_ID"),
        )

    def to_dict(self) -> dict:
        return {
            "allow_payment_reversal": self.allow_payment_reversal,
            "retry_attempts": self.retry_attempts,
            "retry_backoff_base": self.retry_backoff_base,
            "purge_timeout_seconds": self.purge_timeout_seconds,
            "default_series_padding": self.default_series_padding,
            "fiscal_issuer_name": self.fiscal_issuer_name,
            "fiscal_issuer_tax_id": self.fiscal_issuer_tax_id,
        }


def current_settings() -> LedgerSettings:
    """LedgerSettings of the active Flask app (defaults outside an app context)."""
    try:
        settings = current_app.extensions.get("stockledger")
    except RuntimeError:
        return LedgerSettings()
    return settings or LedgerSettings()
