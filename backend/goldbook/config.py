# backend/goldbook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/goldbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///goldbook.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Raise on formula failures instead of degrading the value to zero
    FORMULA_STRICT = _env_flag("FORMULA_STRICT")

    # Formula definitions loaded by `flask trades load-formulas` when no path is given
    FORMULAS_PATH = os.environ.get(
        "FORMULAS_PATH",
        os.path.join(os.path.dirname(__file__), "data", "default_formulas.json"),
    )

    # 1 = no automatic retry; failed saves/settlements are resubmitted by the caller
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
