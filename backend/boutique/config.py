# backend/boutique/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/boutique.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///boutique.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Wall clock used for shift classification and business dates
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "UTC")

    # Combined store + warehouse quantity at or below which an article is "Low"
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "30"))

    # "requested": store is credited with the requested transfer quantity even
    #              when the warehouse could only supply less (legacy behavior).
    # "supplied":  store is credited with what actually left the warehouse.
    TRANSFER_CREDIT_MODE = os.environ.get("TRANSFER_CREDIT_MODE", "requested")
