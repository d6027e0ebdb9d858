# backend/tillkeeper/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tillkeeper.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Used when neither the caller nor the location picks a mode
    DEFAULT_OPERATING_MODE = os.environ.get("TILL_DEFAULT_MODE", "STANDARD")

    # Loyalty program: 1 point per whole currency unit spent, each point
    # worth LOYALTY_POINT_VALUE_CENTS when redeemed
    LOYALTY_ENABLED = _env_flag("TILL_LOYALTY_ENABLED", True)
    LOYALTY_POINT_VALUE_CENTS = int(os.environ.get("TILL_LOYALTY_POINT_VALUE_CENTS", "5"))

    # Both default to the permissive legacy behavior; see DESIGN.md
    LOYALTY_ENFORCE_BALANCE = _env_flag("TILL_LOYALTY_ENFORCE_BALANCE", False)
    STOCK_ALLOW_NEGATIVE = _env_flag("TILL_STOCK_ALLOW_NEGATIVE", True)
