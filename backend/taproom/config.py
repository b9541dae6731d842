# backend/taproom/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/taproom.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///taproom.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # VAT charged on every sale, in basis points (1600 = 16%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "1600"))

    # Residual keg volume above this share of capacity needs operator confirmation on close
    KEG_WRITE_OFF_WARNING_BPS = int(os.environ.get("KEG_WRITE_OFF_WARNING_BPS", "100"))

    # Retry policy for version conflicts and locked rows in the ledger store
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    ACTIVITY_LOG_PAGE_SIZE = 200
