from __future__ import annotations

import os
from decimal import Decimal


def _area_sizes(raw: str) -> tuple[Decimal, ...]:
    return tuple(sorted(Decimal(part.strip()) for part in raw.split(",") if part.strip()))


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///reien.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_AS_ASCII = False
    # Sub-division sizes (㎡) offered to customers when a plot is split.
    STANDARD_AREA_SIZES = _area_sizes(os.getenv("STANDARD_AREA_SIZES", "1.8,3.6"))
    DEFAULT_LANG = os.getenv("DEFAULT_LANG", "ja")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "standard")
