# backend/billing/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///billing.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Order lifecycle
    CANCELLATION_WINDOW_SECONDS = int(os.environ.get("CANCELLATION_WINDOW_SECONDS", "300"))
    SHIFT_LOCK_HOURS = int(os.environ.get("SHIFT_LOCK_HOURS", "12"))

    # Local calendar used for "today" when a franchise has never closed a shift
    BILLING_TIMEZONE = os.environ.get("BILLING_TIMEZONE", "Asia/Kolkata")

    # Reject decrements that would take stock below zero
    ENFORCE_STOCK_FLOOR = _env_bool("ENFORCE_STOCK_FLOOR", True)

    # Print templates
    INVOICE_PAGE_SIZE = 15  # A4 package invoice
    RECEIPT_PAGE_SIZE = 12  # compact store bill

    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "INV")
