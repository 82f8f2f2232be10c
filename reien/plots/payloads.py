from __future__ import annotations

from decimal import Decimal
from typing import Any

from reien.core.models import BuriedPerson, ContractPlot, Customer, History, Invoice, Payment, PhysicalPlot
from reien.core.utils import yen
from reien.plots import contract_status


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _decimal(value) -> str | None:
    return str(Decimal(str(value))) if value is not None else None


def customer_payload(customer: Customer) -> dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "name_kana": customer.name_kana,
        "postal_code": customer.postal_code,
        "address": customer.address,
        "phone_number": customer.phone_number,
        "email": customer.email,
        "notes": customer.notes,
    }


def plot_payload(plot: PhysicalPlot, available_area: Decimal | None = None) -> dict[str, Any]:
    data = {
        "id": plot.id,
        "plot_number": plot.plot_number,
        "section": plot.section,
        "area_name": plot.area_name,
        "area_sqm": _decimal(plot.area_sqm),
        "status": plot.status.value,
        "notes": plot.notes,
    }
    if available_area is not None:
        data["available_area"] = str(available_area)
    return data


def contract_payload(contract_plot: ContractPlot, detail: bool = False) -> dict[str, Any]:
    data = {
        "id": contract_plot.id,
        "physical_plot_id": contract_plot.physical_plot_id,
        "customer_id": contract_plot.customer_id,
        "customer_name": contract_plot.customer.name if contract_plot.customer else None,
        "contract_area_sqm": _decimal(contract_plot.contract_area_sqm),
        "location_description": contract_plot.location_description,
        "contract_status": contract_plot.contract_status.value,
        "contract_status_label": contract_status.get_status_label(contract_plot.contract_status),
        "payment_status": contract_plot.payment_status.value,
        "payment_status_label": contract_status.get_payment_status_label(contract_plot.payment_status),
        "contract_date": _iso(contract_plot.contract_date),
        "price": _decimal(contract_plot.price),
        "transferred_from_id": contract_plot.transferred_from_id,
        "is_deleted": contract_plot.is_deleted,
    }
    if detail:
        data["notes"] = contract_plot.notes
        data["buried_persons"] = [buried_person_payload(person) for person in contract_plot.buried_persons]
        data["invoices"] = [invoice_payload(invoice) for invoice in contract_plot.invoices]
        data["payments"] = [payment_payload(payment) for payment in contract_plot.payments]
    return data


def buried_person_payload(person: BuriedPerson) -> dict[str, Any]:
    return {
        "id": person.id,
        "contract_plot_id": person.contract_plot_id,
        "name": person.name,
        "name_kana": person.name_kana,
        "burial_date": _iso(person.burial_date),
        "notes": person.notes,
    }


def invoice_payload(invoice: Invoice) -> dict[str, Any]:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "amount": _decimal(invoice.amount),
        "amount_label": yen(invoice.amount),
        "issued_on": _iso(invoice.issued_on),
        "due_on": _iso(invoice.due_on),
    }


def payment_payload(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "receipt_number": payment.receipt_number,
        "amount": _decimal(payment.amount),
        "amount_label": yen(payment.amount),
        "paid_on": _iso(payment.paid_on),
        "method": payment.method,
    }


def history_payload(entry: History) -> dict[str, Any]:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "contract_plot_id": entry.contract_plot_id,
        "action_type": entry.action_type.value,
        "changed_fields": entry.changed_fields,
        "changed_by": entry.changed_by,
        "change_reason": entry.change_reason,
        "created_at": _iso(entry.created_at),
    }


def summary_payload(figures: dict[str, Any]) -> dict[str, Any]:
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in figures.items()}
