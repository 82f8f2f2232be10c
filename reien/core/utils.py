from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import jsonify


def format_area(value: Decimal | float | int) -> str:
    # 1.80 -> "1.8", 10.00 -> "10"
    return format(Decimal(str(value)).normalize(), "f")


def yen(value: Decimal | float | int) -> str:
    return f"¥{Decimal(str(value)):,.0f}"


def ok(data: Any, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def error_response(status: int, code: str, message: str, details: dict[str, Any] | None = None):
    body: dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    return jsonify({"success": False, "error": body}), status
