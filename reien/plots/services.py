from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterator

from sqlalchemy import func, or_

from reien.core.enums import (
    ContractOperation,
    ContractStatus,
    HistoryAction,
    PaymentStatus,
    PhysicalPlotStatus,
)
from reien.core.errors import (
    AreaValidationError,
    ContractPlotNotFoundError,
    CustomerNotFoundError,
    PlotNotFoundError,
)
from reien.core.extensions import db
from reien.core.models import (
    BuriedPerson,
    ContractPlot,
    Customer,
    History,
    Invoice,
    Payment,
    PhysicalPlot,
    utcnow,
)
from reien.plots import contract_status
from reien.plots.history import record_history, snapshot_record
from reien.plots.inventory import (
    allocation_scope,
    to_area,
    update_physical_plot_status,
    validate_contract_area,
)

logger = logging.getLogger(__name__)

INITIAL_STATUSES = (ContractStatus.DRAFT, ContractStatus.RESERVED)
BASIC_INFO_FIELDS = ("contract_area_sqm", "location_description", "price", "contract_date", "notes")
CUSTOMER_FIELDS = ("customer_id", "customer")
CUSTOMER_ATTRS = ("name", "name_kana", "postal_code", "address", "phone_number", "email", "notes")
PAYMENT_METHODS = {"bank_transfer", "cash", "card", "direct_debit"}


def _text(value) -> str:
    return str(value).strip() if value is not None else ""


def _parse_int(value, field_name: str) -> int:
    raw = _text(value)
    if not raw.lstrip("-").isdigit():
        raise ValueError(f"Invalid {field_name}")
    return int(raw)


def _parse_iso_date(value, field_name: str) -> date:
    raw = _text(value)
    if not raw:
        raise ValueError(f"Missing {field_name}")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid date format for {field_name}") from exc


def _parse_optional_iso_date(value, field_name: str) -> date | None:
    if not _text(value):
        return None
    return _parse_iso_date(value, field_name)


def _parse_amount(value, field_name: str) -> Decimal:
    raw = _text(value).replace(",", "")
    if not raw:
        raise ValueError(f"Missing {field_name}")
    try:
        amount = Decimal(raw).quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount in {field_name}") from exc
    if amount < 0:
        raise ValueError(f"{field_name} cannot be negative")
    return amount


def _parse_contract_status(value) -> ContractStatus:
    if isinstance(value, ContractStatus):
        return value
    try:
        return ContractStatus(_text(value).lower())
    except ValueError as exc:
        raise ValueError(f"Invalid contract status: {value}") from exc


def _parse_payment_status(value) -> PaymentStatus:
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(_text(value).lower())
    except ValueError as exc:
        raise ValueError(f"Invalid payment status: {value}") from exc


def _optional_payment_status(value) -> PaymentStatus | None:
    if isinstance(value, PaymentStatus):
        return value
    return _parse_payment_status(value) if _text(value) else None


# Customers


def customer_by_id(customer_id: int) -> Customer:
    customer = Customer.query.filter_by(id=customer_id, deleted_at=None).first()
    if not customer:
        raise CustomerNotFoundError(customer_id)
    return customer


def list_customers(search_text: str = "", limit: int = 200) -> list[Customer]:
    query = Customer.query.filter(Customer.deleted_at.is_(None))
    term = (search_text or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(
                Customer.name.ilike(like),
                Customer.name_kana.ilike(like),
                Customer.phone_number.ilike(like),
            )
        )
    return query.order_by(Customer.name_kana.asc(), Customer.id.asc()).limit(limit).all()


def _customer_values(payload: dict) -> dict[str, str | None]:
    values: dict[str, str | None] = {}
    for attr in CUSTOMER_ATTRS:
        if attr in payload:
            values[attr] = _text(payload.get(attr))
    if "email" in values:
        email = values["email"] or None
        if email and ("@" not in email or email.startswith("@") or email.endswith("@")):
            raise ValueError("Invalid email")
        values["email"] = email
    return values


def _add_customer(payload: dict) -> Customer:
    values = _customer_values(payload)
    if not values.get("name"):
        raise ValueError("Customer name is required")
    customer = Customer(**values)
    db.session.add(customer)
    db.session.flush()
    record_history(customer, HistoryAction.CREATE, after=snapshot_record(customer))
    return customer


def create_customer(payload: dict) -> Customer:
    customer = _add_customer(payload)
    db.session.commit()
    logger.info("Customer %s created", customer.id)
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = customer_by_id(customer_id)
    values = _customer_values(payload)
    if "name" in values and not values["name"]:
        raise ValueError("Customer name is required")
    before = snapshot_record(customer)
    for attr, value in values.items():
        setattr(customer, attr, value)
    db.session.flush()
    record_history(customer, HistoryAction.UPDATE, before=before, after=snapshot_record(customer))
    db.session.commit()
    return customer


def _resolve_customer(payload: dict, required: bool = False) -> Customer | None:
    if _text(payload.get("customer_id")):
        return customer_by_id(_parse_int(payload.get("customer_id"), "customer id"))
    inline = payload.get("customer")
    if isinstance(inline, dict):
        return _add_customer(inline)
    if required:
        raise ValueError("A customer is required")
    return None


# Physical plots


def physical_plot_by_id(plot_id: int) -> PhysicalPlot:
    plot = PhysicalPlot.query.filter_by(id=plot_id, deleted_at=None).first()
    if not plot:
        raise PlotNotFoundError(plot_id)
    return plot


def list_physical_plots(filters: dict[str, str]) -> list[PhysicalPlot]:
    query = PhysicalPlot.query.filter(PhysicalPlot.deleted_at.is_(None))
    if filters.get("area_name"):
        query = query.filter(PhysicalPlot.area_name == filters["area_name"])
    if filters.get("status"):
        try:
            status = PhysicalPlotStatus(filters["status"])
        except ValueError as exc:
            raise ValueError(f"Invalid plot status: {filters['status']}") from exc
        query = query.filter(PhysicalPlot.status == status)
    if filters.get("search"):
        query = query.filter(PhysicalPlot.plot_number.ilike(f"%{filters['search']}%"))
    return query.order_by(PhysicalPlot.plot_number.asc()).all()


def create_physical_plot(payload: dict) -> PhysicalPlot:
    plot_number = _text(payload.get("plot_number"))
    if not plot_number:
        raise ValueError("Plot number is required")
    if PhysicalPlot.query.filter_by(plot_number=plot_number).first():
        raise ValueError(f"Plot number {plot_number} already exists")
    area = to_area(payload.get("area_sqm"))
    if area <= 0:
        raise ValueError("Physical plot area must be greater than 0")

    plot = PhysicalPlot(
        plot_number=plot_number,
        area_name=_text(payload.get("area_name")),
        area_sqm=area,
        notes=_text(payload.get("notes")),
    )
    db.session.add(plot)
    db.session.flush()
    update_physical_plot_status(plot.id)
    record_history(plot, HistoryAction.CREATE, after=snapshot_record(plot))
    db.session.commit()
    logger.info("Physical plot %s (%s, %s㎡) registered", plot.id, plot_number, area)
    return plot


def plot_history(plot_id: int, limit: int = 200) -> list[History]:
    physical_plot_by_id(plot_id)
    return (
        History.query.filter_by(physical_plot_id=plot_id)
        .order_by(History.created_at.desc(), History.id.desc())
        .limit(limit)
        .all()
    )


# Contract plots


def contract_plot_by_id(contract_plot_id: int, include_deleted: bool = False) -> ContractPlot:
    query = ContractPlot.query.filter_by(id=contract_plot_id)
    if not include_deleted:
        query = query.filter(ContractPlot.deleted_at.is_(None))
    contract_plot = query.first()
    if not contract_plot:
        raise ContractPlotNotFoundError(contract_plot_id)
    return contract_plot


def contract_plots_for_plot(plot_id: int, include_deleted: bool = False) -> list[ContractPlot]:
    physical_plot_by_id(plot_id)
    query = ContractPlot.query.filter_by(physical_plot_id=plot_id)
    if not include_deleted:
        query = query.filter(ContractPlot.deleted_at.is_(None))
    return query.order_by(ContractPlot.id.asc()).all()


def _require_area(plot_id: int, requested, exclude_contract_plot_id: int | None = None) -> Decimal:
    result = validate_contract_area(plot_id, requested, exclude_contract_plot_id)
    if not result.is_valid:
        raise AreaValidationError(result)
    return to_area(requested)


@contextmanager
def _contract_scope(contract_plot_id: int) -> Iterator[ContractPlot]:
    contract_plot = contract_plot_by_id(contract_plot_id)
    with allocation_scope(contract_plot.physical_plot_id):
        # Re-read under the plot lock; a concurrent request may have moved it on.
        db.session.refresh(contract_plot)
        if contract_plot.deleted_at is not None:
            raise ContractPlotNotFoundError(contract_plot_id)
        yield contract_plot


def create_contract_plot(plot_id: int, payload: dict) -> ContractPlot:
    initial_status = _parse_contract_status(payload.get("contract_status") or ContractStatus.DRAFT.value)
    payment_status = _parse_payment_status(payload.get("payment_status") or PaymentStatus.UNPAID.value)

    with allocation_scope(plot_id) as plot:
        area = _require_area(plot.id, payload.get("contract_area_sqm"))
        if initial_status not in INITIAL_STATUSES:
            raise ValueError("A new contract must start as draft or reserved")
        contract_status.validate_payment_status(initial_status, payment_status)
        customer = _resolve_customer(payload)

        contract_plot = ContractPlot(
            physical_plot_id=plot.id,
            customer_id=customer.id if customer else None,
            contract_area_sqm=area,
            location_description=_text(payload.get("location_description")) or None,
            contract_status=initial_status,
            payment_status=payment_status,
            contract_date=_parse_optional_iso_date(payload.get("contract_date"), "contract date"),
            price=_parse_amount(payload.get("price") or "0", "price"),
            notes=_text(payload.get("notes")),
        )
        db.session.add(contract_plot)
        db.session.flush()
        record_history(contract_plot, HistoryAction.CREATE, after=snapshot_record(contract_plot))
        update_physical_plot_status(plot.id)

    logger.info(
        "Contract plot %s allocated %s㎡ on physical plot %s (%s)",
        contract_plot.id,
        area,
        plot_id,
        initial_status.value,
    )
    return contract_plot


def update_contract_plot(contract_plot_id: int, payload: dict, reason: str | None = None) -> ContractPlot:
    touches_basic = any(key in payload for key in BASIC_INFO_FIELDS)
    touches_customer = any(key in payload for key in CUSTOMER_FIELDS)
    if not touches_basic and not touches_customer:
        raise ValueError("Nothing to update")

    with _contract_scope(contract_plot_id) as contract_plot:
        area_changed = False
        new_area = None
        if "contract_area_sqm" in payload:
            new_area = _require_area(
                contract_plot.physical_plot_id,
                payload.get("contract_area_sqm"),
                exclude_contract_plot_id=contract_plot.id,
            )
            area_changed = new_area != Decimal(str(contract_plot.contract_area_sqm))
        if touches_basic:
            contract_status.validate_operation(
                contract_plot.contract_status, ContractOperation.EDIT_BASIC_INFO
            )
        if touches_customer:
            contract_status.validate_operation(
                contract_plot.contract_status, ContractOperation.EDIT_CUSTOMER
            )

        before = snapshot_record(contract_plot)
        if new_area is not None:
            contract_plot.contract_area_sqm = new_area
        if "location_description" in payload:
            contract_plot.location_description = _text(payload.get("location_description")) or None
        if "price" in payload:
            contract_plot.price = _parse_amount(payload.get("price"), "price")
        if "contract_date" in payload:
            contract_plot.contract_date = _parse_optional_iso_date(payload.get("contract_date"), "contract date")
        if "notes" in payload:
            contract_plot.notes = _text(payload.get("notes"))
        if touches_customer:
            customer = _resolve_customer(payload, required=True)
            contract_plot.customer_id = customer.id
        db.session.flush()
        record_history(
            contract_plot,
            HistoryAction.UPDATE,
            before=before,
            after=snapshot_record(contract_plot),
            reason=reason,
        )
        if area_changed:
            update_physical_plot_status(contract_plot.physical_plot_id)

    if area_changed:
        logger.info("Contract plot %s resized to %s㎡", contract_plot_id, new_area)
    return contract_plot


def _apply_transition(
    contract_plot: ContractPlot,
    target: ContractStatus,
    payment_status: PaymentStatus | None,
    reason: str | None,
) -> None:
    contract_status.validate_transition(contract_plot.contract_status, target)
    resulting_payment = payment_status or contract_plot.payment_status
    contract_status.validate_payment_status(target, resulting_payment)

    before = snapshot_record(contract_plot)
    contract_plot.contract_status = target
    contract_plot.payment_status = resulting_payment
    if target == ContractStatus.CANCELLED:
        # Cancelled contracts give their area back to the physical plot.
        contract_plot.deleted_at = utcnow()
    db.session.flush()
    record_history(
        contract_plot,
        HistoryAction.STATUS_CHANGE,
        before=before,
        after=snapshot_record(contract_plot),
        reason=reason,
    )
    update_physical_plot_status(contract_plot.physical_plot_id)


def change_contract_status(
    contract_plot_id: int,
    new_status,
    payment_status=None,
    reason: str | None = None,
) -> ContractPlot:
    target = _parse_contract_status(new_status)
    if target == ContractStatus.TRANSFERRED:
        raise ValueError("Contracts reach transferred only through an ownership transfer")
    payment = _optional_payment_status(payment_status)
    with _contract_scope(contract_plot_id) as contract_plot:
        previous = contract_plot.contract_status
        _apply_transition(contract_plot, target, payment, reason)
    logger.info("Contract plot %s status %s -> %s", contract_plot_id, previous.value, target.value)
    return contract_plot


def _cancellation_payment_status(current: PaymentStatus) -> PaymentStatus:
    if current in {PaymentStatus.PAID, PaymentStatus.PARTIAL_PAID, PaymentStatus.REFUNDED}:
        return PaymentStatus.REFUNDED
    return PaymentStatus.CANCELLED


def request_cancellation(contract_plot_id: int, payment_status=None, reason: str | None = None) -> ContractPlot:
    payment = _optional_payment_status(payment_status)
    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(
            contract_plot.contract_status, ContractOperation.REQUEST_CANCELLATION
        )
        payment = payment or _cancellation_payment_status(contract_plot.payment_status)
        _apply_transition(contract_plot, ContractStatus.CANCELLED, payment, reason)
    logger.info("Contract plot %s cancelled (%s)", contract_plot_id, payment.value)
    return contract_plot


def _next_number(model, column, prefix: str) -> str:
    count = db.session.query(func.count(model.id)).filter(column.like(f"{prefix}%")).scalar()
    return f"{prefix}{count + 1:05d}"


def register_payment(contract_plot_id: int, payload: dict, user_id: int | None = None) -> Payment:
    amount = _parse_amount(payload.get("amount"), "amount")
    if amount <= 0:
        raise ValueError("Payment amount must be greater than 0")
    new_payment_status = _parse_payment_status(payload.get("payment_status"))
    paid_on = _parse_optional_iso_date(payload.get("paid_on"), "payment date") or date.today()
    method = _text(payload.get("method")) or "bank_transfer"
    if method not in PAYMENT_METHODS:
        raise ValueError(f"Invalid payment method: {method}")

    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(contract_plot.contract_status, ContractOperation.REGISTER_PAYMENT)
        contract_status.validate_payment_status(contract_plot.contract_status, new_payment_status)

        payment = Payment(
            contract_plot_id=contract_plot.id,
            receipt_number=_next_number(Payment, Payment.receipt_number, f"RCP-{paid_on.year}-"),
            amount=amount,
            paid_on=paid_on,
            method=method,
            staff_id=user_id,
        )
        db.session.add(payment)
        before = snapshot_record(contract_plot)
        contract_plot.payment_status = new_payment_status
        db.session.flush()
        record_history(
            contract_plot,
            HistoryAction.UPDATE,
            before=before,
            after=snapshot_record(contract_plot),
            reason=f"payment {payment.receipt_number}",
        )

    logger.info(
        "Payment %s of %s registered on contract plot %s (%s)",
        payment.receipt_number,
        amount,
        contract_plot_id,
        new_payment_status.value,
    )
    return payment


def issue_invoice(contract_plot_id: int, payload: dict, user_id: int | None = None) -> Invoice:
    amount = _parse_amount(payload.get("amount"), "amount")
    if amount <= 0:
        raise ValueError("Invoice amount must be greater than 0")
    issued_on = _parse_optional_iso_date(payload.get("issued_on"), "issue date") or date.today()
    due_on = _parse_optional_iso_date(payload.get("due_on"), "due date")
    if due_on and due_on < issued_on:
        raise ValueError("Due date cannot be before the issue date")

    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(contract_plot.contract_status, ContractOperation.ISSUE_INVOICE)
        invoice = Invoice(
            contract_plot_id=contract_plot.id,
            invoice_number=_next_number(Invoice, Invoice.invoice_number, f"INV-{issued_on.year}-"),
            amount=amount,
            issued_on=issued_on,
            due_on=due_on,
            staff_id=user_id,
        )
        db.session.add(invoice)
        db.session.flush()

    logger.info("Invoice %s issued for contract plot %s", invoice.invoice_number, contract_plot_id)
    return invoice


def add_buried_person(contract_plot_id: int, payload: dict) -> BuriedPerson:
    name = _text(payload.get("name"))
    if not name:
        raise ValueError("Buried person name is required")

    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(contract_plot.contract_status, ContractOperation.ADD_BURIED_PERSON)
        person = BuriedPerson(
            contract_plot_id=contract_plot.id,
            name=name,
            name_kana=_text(payload.get("name_kana")),
            burial_date=_parse_optional_iso_date(payload.get("burial_date"), "burial date"),
            notes=_text(payload.get("notes")),
        )
        db.session.add(person)
        db.session.flush()
        record_history(person, HistoryAction.CREATE, after=snapshot_record(person))

    return person


def transfer_ownership(contract_plot_id: int, payload: dict, reason: str | None = None) -> ContractPlot:
    """Move a contract to a new holder.

    The current contract ends as ``transferred`` and releases its area; a new
    ``active`` contract for the new customer takes over the same area and
    location in the same transaction, so the plot status is unchanged.
    """
    successor_payment = _parse_payment_status(payload.get("payment_status") or PaymentStatus.PAID.value)

    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(contract_plot.contract_status, ContractOperation.TRANSFER_OWNERSHIP)
        contract_status.validate_transition(contract_plot.contract_status, ContractStatus.TRANSFERRED)
        contract_status.validate_payment_status(ContractStatus.TRANSFERRED, contract_plot.payment_status)
        contract_status.validate_payment_status(ContractStatus.ACTIVE, successor_payment)
        customer = _resolve_customer(payload, required=True)
        if customer.id == contract_plot.customer_id:
            raise ValueError("The new holder must be a different customer")

        before = snapshot_record(contract_plot)
        contract_plot.contract_status = ContractStatus.TRANSFERRED
        contract_plot.deleted_at = utcnow()
        db.session.flush()
        record_history(
            contract_plot,
            HistoryAction.STATUS_CHANGE,
            before=before,
            after=snapshot_record(contract_plot),
            reason=reason,
        )

        area = _require_area(contract_plot.physical_plot_id, contract_plot.contract_area_sqm)
        successor = ContractPlot(
            physical_plot_id=contract_plot.physical_plot_id,
            customer_id=customer.id,
            contract_area_sqm=area,
            location_description=contract_plot.location_description,
            contract_status=ContractStatus.ACTIVE,
            payment_status=successor_payment,
            contract_date=_parse_optional_iso_date(payload.get("contract_date"), "contract date") or date.today(),
            price=_parse_amount(payload.get("price") or "0", "price"),
            notes=_text(payload.get("notes")),
            transferred_from_id=contract_plot.id,
        )
        db.session.add(successor)
        db.session.flush()
        record_history(successor, HistoryAction.CREATE, after=snapshot_record(successor), reason=reason)
        update_physical_plot_status(contract_plot.physical_plot_id)

    logger.info("Contract plot %s transferred to %s (customer %s)", contract_plot_id, successor.id, customer.id)
    return successor


def delete_contract_plot(contract_plot_id: int, reason: str | None = None) -> ContractPlot:
    with _contract_scope(contract_plot_id) as contract_plot:
        contract_status.validate_operation(contract_plot.contract_status, ContractOperation.DELETE)
        before = snapshot_record(contract_plot)
        contract_plot.deleted_at = utcnow()
        db.session.flush()
        record_history(
            contract_plot,
            HistoryAction.DELETE,
            before=before,
            after=snapshot_record(contract_plot),
            reason=reason,
        )
        update_physical_plot_status(contract_plot.physical_plot_id)

    logger.info("Contract plot %s released from physical plot %s", contract_plot_id, contract_plot.physical_plot_id)
    return contract_plot


def backfill_contract_statuses() -> dict[str, int]:
    """Align legacy ``active`` contracts with their payment status."""
    summary = {"checked": 0, "cancelled": 0, "suspended": 0}
    contracts = (
        ContractPlot.query.filter(ContractPlot.deleted_at.is_(None))
        .filter(ContractPlot.contract_status == ContractStatus.ACTIVE)
        .order_by(ContractPlot.id.asc())
        .all()
    )
    for contract_plot in contracts:
        summary["checked"] += 1
        if contract_plot.payment_status in {PaymentStatus.CANCELLED, PaymentStatus.REFUNDED}:
            target = ContractStatus.CANCELLED
        elif contract_plot.payment_status == PaymentStatus.OVERDUE:
            target = ContractStatus.SUSPENDED
        else:
            continue
        change_contract_status(contract_plot.id, target, reason="contract status backfill")
        summary[target.value] += 1
    return summary
