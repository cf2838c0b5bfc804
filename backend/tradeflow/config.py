# backend/tradeflow/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tradeflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tradeflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Document numbering
    SEQUENCE_RETRY_ATTEMPTS = _env_int("SEQUENCE_RETRY_ATTEMPTS", 3)
    SEQUENCE_RETRY_BACKOFF = float(os.environ.get("SEQUENCE_RETRY_BACKOFF", "0.05"))
    REFERENCE_WIDTH = _env_int("REFERENCE_WIDTH", 4)
    REFERENCE_PREFIXES = {
        "invoice": os.environ.get("INVOICE_PREFIX", "INV"),
        "quote": os.environ.get("QUOTE_PREFIX", "Q"),
        "certificate": os.environ.get("CERTIFICATE_PREFIX", "CP12"),
        "job": os.environ.get("JOB_PREFIX", "TF"),
    }

    # Default validity windows (days after issue)
    INVOICE_DUE_DAYS = _env_int("INVOICE_DUE_DAYS", 14)
    QUOTE_VALID_DAYS = _env_int("QUOTE_VALID_DAYS", 30)
    CERTIFICATE_VALID_DAYS = _env_int("CERTIFICATE_VALID_DAYS", 365)

    # Fractional digits accepted on user-entered amounts
    MONEY_INPUT_PLACES = _env_int("MONEY_INPUT_PLACES", 2)
    # Ceiling for entered amounts and computed totals (pence); default £1bn
    MONEY_MAX_PENCE = _env_int("MONEY_MAX_PENCE", 100_000_000_000)

    # Rendering boundary
    RENDER_TIMEOUT_SECONDS = float(os.environ.get("RENDER_TIMEOUT_SECONDS", "30"))
    # None -> built-in JSON renderer; otherwise a DocumentRenderer instance
    DOCUMENT_RENDERER = None
