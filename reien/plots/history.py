from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from flask import has_request_context, request
from flask_login import current_user

from reien.core.enums import HistoryAction
from reien.core.extensions import db
from reien.core.models import BuriedPerson, ContractPlot, Customer, History, PhysicalPlot

EXCLUDED_FIELDS = {"created_at", "updated_at", "deleted_at"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def snapshot_record(instance) -> dict[str, Any]:
    return {
        column.key: _jsonable(getattr(instance, column.key))
        for column in instance.__table__.columns
    }


def detect_changed_fields(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    changed: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        if key in EXCLUDED_FIELDS:
            continue
        if before.get(key) != after.get(key):
            changed[key] = {"before": before.get(key), "after": after.get(key)}
    return changed


def _changed_by() -> str:
    if has_request_context() and current_user.is_authenticated:
        return current_user.display_name
    return "system"


def _ip_address() -> str:
    if not has_request_context():
        return "unknown"
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def record_history(
    instance,
    action: HistoryAction,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    reason: str | None = None,
) -> History | None:
    """Add an audit row for ``instance``; an UPDATE without changes is skipped."""
    changed_fields = None
    if action in {HistoryAction.UPDATE, HistoryAction.STATUS_CHANGE} and before is not None and after is not None:
        changed_fields = detect_changed_fields(before, after)
        if not changed_fields:
            return None

    physical_plot_id = None
    contract_plot_id = None
    if isinstance(instance, PhysicalPlot):
        entity_type = "PhysicalPlot"
        physical_plot_id = instance.id
    elif isinstance(instance, ContractPlot):
        entity_type = "ContractPlot"
        physical_plot_id = instance.physical_plot_id
        contract_plot_id = instance.id
    elif isinstance(instance, BuriedPerson):
        entity_type = "BuriedPerson"
        contract_plot_id = instance.contract_plot_id
        physical_plot_id = instance.contract_plot.physical_plot_id
    elif isinstance(instance, Customer):
        entity_type = "Customer"
    else:
        entity_type = type(instance).__name__

    entry = History(
        entity_type=entity_type,
        entity_id=instance.id,
        physical_plot_id=physical_plot_id,
        contract_plot_id=contract_plot_id,
        action_type=action,
        before_record=before,
        after_record=after,
        changed_fields=changed_fields,
        changed_by=_changed_by(),
        change_reason=reason or None,
        ip_address=_ip_address(),
    )
    db.session.add(entry)
    return entry
