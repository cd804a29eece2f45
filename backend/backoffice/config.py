# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Role name that passes every structural permission check
    SUPER_ADMIN_ROLE = os.environ.get("SUPER_ADMIN_ROLE", "super admin")

    # Approval reminder series sent while a cancellation/edit request waits
    REMINDER_INTERVAL_HOURS = int(os.environ.get("REMINDER_INTERVAL_HOURS", "24"))
    REMINDER_MAX_OCCURRENCES = int(os.environ.get("REMINDER_MAX_OCCURRENCES", "6"))

    FORM_NOTES_MAX_LENGTH = 255

    # Sales tax applied by sales invoices with type_of_tax include/exclude
    SALES_TAX_RATE_BPS = int(os.environ.get("SALES_TAX_RATE_BPS", "1000"))

    # Optional clock override (tests inject a FixedClock here)
    CLOCK = None
