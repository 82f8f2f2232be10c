from __future__ import annotations

from decimal import Decimal

import pytest

from reien.core.enums import ContractStatus, HistoryAction, PaymentStatus, PhysicalPlotStatus
from reien.core.errors import (
    AreaValidationError,
    ContractOperationNotAllowedError,
    ContractPlotNotFoundError,
    ContractStatusTransitionError,
    CustomerNotFoundError,
    PaymentStatusMismatchError,
)
from reien.core.extensions import db
from reien.core.models import ContractPlot, Customer, History, PhysicalPlot
from reien.plots.inventory import calculate_available_area
from reien.plots.services import (
    add_buried_person,
    backfill_contract_statuses,
    change_contract_status,
    contract_plot_by_id,
    contract_plots_for_plot,
    create_contract_plot,
    create_customer,
    create_physical_plot,
    delete_contract_plot,
    issue_invoice,
    list_customers,
    list_physical_plots,
    plot_history,
    register_payment,
    request_cancellation,
    transfer_ownership,
    update_contract_plot,
    update_customer,
)
from reien.plots.summary import overall_summary, section_summary


def _plot_status(plot_id: int) -> PhysicalPlotStatus:
    return db.session.get(PhysicalPlot, plot_id).status


def test_create_physical_plot_starts_available(app):
    plot = create_physical_plot({"plot_number": "C-1", "area_name": "3期", "area_sqm": "3.6"})
    assert plot.status == PhysicalPlotStatus.AVAILABLE
    assert plot.section == "C"
    assert History.query.filter_by(physical_plot_id=plot.id, action_type=HistoryAction.CREATE).count() == 1

    with pytest.raises(ValueError):
        create_physical_plot({"plot_number": "C-1", "area_sqm": "3.6"})
    with pytest.raises(ValueError):
        create_physical_plot({"plot_number": "C-2", "area_sqm": "0"})


def test_physical_plot_area_cannot_change(app, plot_id):
    plot = db.session.get(PhysicalPlot, plot_id("A-1"))
    with pytest.raises(ValueError):
        plot.area_sqm = Decimal("1.8")


def test_list_physical_plots_filters(app):
    numbers = [plot.plot_number for plot in list_physical_plots({"area_name": "1期"})]
    assert numbers == ["A-1", "A-2", "A-3"]
    sold_out = list_physical_plots({"status": "sold_out"})
    assert [plot.plot_number for plot in sold_out] == ["A-3"]
    assert [plot.plot_number for plot in list_physical_plots({"search": "B"})] == ["B-1"]
    with pytest.raises(ValueError):
        list_physical_plots({"status": "gone"})


def test_create_contract_plot_allocates_and_updates_status(app, plot_id):
    a1 = plot_id("A-1")
    first = create_contract_plot(
        a1,
        {"contract_area_sqm": "1.8", "location_description": "左半分", "customer": {"name": "佐藤 次郎"}},
    )
    assert first.contract_status == ContractStatus.DRAFT
    assert first.payment_status == PaymentStatus.UNPAID
    assert first.customer.name == "佐藤 次郎"
    assert _plot_status(a1) == PhysicalPlotStatus.PARTIALLY_SOLD

    create_contract_plot(a1, {"contract_area_sqm": "1.8", "contract_status": "reserved"})
    assert _plot_status(a1) == PhysicalPlotStatus.SOLD_OUT

    with pytest.raises(AreaValidationError) as excinfo:
        create_contract_plot(a1, {"contract_area_sqm": "0.5"})
    assert excinfo.value.details() == {"available_area": "0.00"}
    assert ContractPlot.query.filter_by(physical_plot_id=a1).count() == 2


def test_create_contract_plot_rejects_bad_initial_state(app, plot_id):
    a1 = plot_id("A-1")
    with pytest.raises(ValueError):
        create_contract_plot(a1, {"contract_area_sqm": "1.8", "contract_status": "active"})
    with pytest.raises(PaymentStatusMismatchError):
        create_contract_plot(a1, {"contract_area_sqm": "1.8", "payment_status": "paid"})
    with pytest.raises(CustomerNotFoundError):
        create_contract_plot(a1, {"contract_area_sqm": "1.8", "customer_id": "999"})
    assert ContractPlot.query.filter_by(physical_plot_id=a1).count() == 0
    assert _plot_status(a1) == PhysicalPlotStatus.AVAILABLE


def test_resize_checks_area_without_counting_itself(app, plot_id, contract_id):
    a2 = plot_id("A-2")
    yamada = contract_id("A-2", "左半分")

    resized = update_contract_plot(yamada, {"contract_area_sqm": "3.6"}, reason="区画拡張")
    assert resized.contract_area_sqm == Decimal("3.6")
    assert _plot_status(a2) == PhysicalPlotStatus.SOLD_OUT

    with pytest.raises(AreaValidationError):
        update_contract_plot(yamada, {"contract_area_sqm": "4.0"})

    entry = (
        History.query.filter_by(contract_plot_id=yamada, action_type=HistoryAction.UPDATE)
        .order_by(History.id.desc())
        .first()
    )
    assert entry.change_reason == "区画拡張"
    assert entry.changed_by == "system"
    assert set(entry.changed_fields) == {"contract_area_sqm"}


def test_update_respects_operation_table(app, plot_id, contract_id):
    suzuki = contract_id("A-3", "左半分")
    change_contract_status(suzuki, "suspended", payment_status="overdue")
    with pytest.raises(ContractOperationNotAllowedError):
        update_contract_plot(suzuki, {"customer_id": "3"})
    updated = update_contract_plot(suzuki, {"notes": "督促済み"})
    assert updated.notes == "督促済み"
    with pytest.raises(ValueError):
        update_contract_plot(suzuki, {})


def test_sub_cent_area_is_rejected_instead_of_rounded(app, plot_id, contract_id):
    a1 = plot_id("A-1")
    with pytest.raises(AreaValidationError):
        create_contract_plot(a1, {"contract_area_sqm": "1.804"})
    assert ContractPlot.query.filter_by(physical_plot_id=a1).count() == 0

    with pytest.raises(AreaValidationError):
        update_contract_plot(contract_id("A-2", "左半分"), {"contract_area_sqm": "1e30"})
    assert calculate_available_area(plot_id("A-2")) == Decimal("1.8")


def test_status_change_accepts_enum_members(app, contract_id):
    suzuki = contract_id("A-3", "左半分")
    suspended = change_contract_status(suzuki, ContractStatus.SUSPENDED, PaymentStatus.OVERDUE)
    assert suspended.contract_status == ContractStatus.SUSPENDED
    assert suspended.payment_status == PaymentStatus.OVERDUE

    cancelled = request_cancellation(suzuki, payment_status=PaymentStatus.CANCELLED)
    assert cancelled.payment_status == PaymentStatus.CANCELLED


def test_status_change_validates_transition_and_payment(app, contract_id):
    tanaka = contract_id("A-3", "右半分")
    with pytest.raises(ContractStatusTransitionError):
        change_contract_status(tanaka, "suspended")
    with pytest.raises(PaymentStatusMismatchError):
        change_contract_status(tanaka, "active", payment_status="overdue")

    contract_plot = change_contract_status(tanaka, "active", payment_status="partial_paid", reason="本契約")
    assert contract_plot.contract_status == ContractStatus.ACTIVE
    entry = History.query.filter_by(contract_plot_id=tanaka, action_type=HistoryAction.STATUS_CHANGE).one()
    assert entry.changed_fields["contract_status"] == {"before": "reserved", "after": "active"}

    with pytest.raises(ValueError):
        change_contract_status(tanaka, "transferred")


def test_cancellation_returns_area_to_inventory(app, plot_id, contract_id):
    a3 = plot_id("A-3")
    suzuki = contract_id("A-3", "左半分")

    cancelled = request_cancellation(suzuki, reason="契約者都合")
    assert cancelled.contract_status == ContractStatus.CANCELLED
    assert cancelled.payment_status == PaymentStatus.REFUNDED
    assert cancelled.is_deleted
    assert calculate_available_area(a3) == Decimal("1.8")
    assert _plot_status(a3) == PhysicalPlotStatus.PARTIALLY_SOLD

    with pytest.raises(ContractPlotNotFoundError):
        contract_plot_by_id(suzuki)
    assert contract_plot_by_id(suzuki, include_deleted=True).contract_status == ContractStatus.CANCELLED
    assert len(contract_plots_for_plot(a3)) == 1
    assert len(contract_plots_for_plot(a3, include_deleted=True)) == 2


def test_unpaid_reservation_cancels_with_cancelled_payment(app, contract_id):
    cancelled = request_cancellation(contract_id("A-3", "右半分"))
    assert cancelled.payment_status == PaymentStatus.CANCELLED


def test_payments_and_invoices(app, contract_id):
    tanaka = contract_id("A-3", "右半分")
    invoice = issue_invoice(tanaka, {"amount": "900000", "issued_on": "2024-02-01", "due_on": "2024-03-01"})
    assert invoice.invoice_number == "INV-2024-00001"

    payment = register_payment(
        tanaka, {"amount": "300000", "paid_on": "2024-02-20", "payment_status": "partial_paid"}, user_id=None
    )
    assert payment.receipt_number == "RCP-2024-00001"
    assert contract_plot_by_id(tanaka).payment_status == PaymentStatus.PARTIAL_PAID

    with pytest.raises(PaymentStatusMismatchError):
        register_payment(tanaka, {"amount": "600000", "payment_status": "paid"})
    with pytest.raises(ValueError):
        issue_invoice(tanaka, {"amount": "1", "issued_on": "2024-02-01", "due_on": "2024-01-01"})

    second = issue_invoice(tanaka, {"amount": "600000", "issued_on": "2024-04-01"})
    assert second.invoice_number == "INV-2024-00002"


def test_draft_contracts_cannot_take_payments(app, plot_id):
    draft = create_contract_plot(plot_id("A-1"), {"contract_area_sqm": "1.8"})
    with pytest.raises(ContractOperationNotAllowedError):
        register_payment(draft.id, {"amount": "1000", "payment_status": "unpaid"})
    with pytest.raises(ContractOperationNotAllowedError):
        issue_invoice(draft.id, {"amount": "1000"})


def test_buried_person_only_on_active_contract(app, contract_id):
    with pytest.raises(ContractOperationNotAllowedError):
        add_buried_person(contract_id("A-3", "右半分"), {"name": "田中 花"})
    person = add_buried_person(contract_id("A-2", "左半分"), {"name": "山田 一", "burial_date": "2024-05-01"})
    assert person.burial_date.isoformat() == "2024-05-01"
    entry = History.query.filter_by(entity_type="BuriedPerson", entity_id=person.id).one()
    assert entry.contract_plot_id == person.contract_plot_id


def test_transfer_moves_allocation_to_new_holder(app, plot_id, contract_id):
    a2 = plot_id("A-2")
    yamada = contract_id("A-2", "左半分")
    heir = create_customer({"name": "山田 次郎", "name_kana": "ヤマダ ジロウ"})

    successor = transfer_ownership(yamada, {"customer_id": str(heir.id)}, reason="相続")
    assert successor.contract_status == ContractStatus.ACTIVE
    assert successor.payment_status == PaymentStatus.PAID
    assert successor.customer_id == heir.id
    assert successor.transferred_from_id == yamada
    assert successor.location_description == "左半分"
    assert successor.contract_area_sqm == Decimal("1.8")

    previous = contract_plot_by_id(yamada, include_deleted=True)
    assert previous.contract_status == ContractStatus.TRANSFERRED
    assert previous.is_deleted
    assert calculate_available_area(a2) == Decimal("1.8")
    assert _plot_status(a2) == PhysicalPlotStatus.PARTIALLY_SOLD


def test_transfer_requires_paid_active_contract(app, contract_id):
    suzuki = contract_id("A-3", "左半分")
    with pytest.raises(PaymentStatusMismatchError):
        transfer_ownership(suzuki, {"customer_id": "3"})
    with pytest.raises(ContractOperationNotAllowedError):
        transfer_ownership(contract_id("A-3", "右半分"), {"customer_id": "1"})
    with pytest.raises(ValueError):
        transfer_ownership(contract_id("A-2", "左半分"), {})


def test_delete_only_in_draft(app, plot_id, contract_id):
    a1 = plot_id("A-1")
    with pytest.raises(ContractOperationNotAllowedError):
        delete_contract_plot(contract_id("A-2", "左半分"))

    draft = create_contract_plot(a1, {"contract_area_sqm": "3.6"})
    assert _plot_status(a1) == PhysicalPlotStatus.SOLD_OUT
    delete_contract_plot(draft.id, reason="入力ミス")
    assert _plot_status(a1) == PhysicalPlotStatus.AVAILABLE
    actions = [entry.action_type for entry in plot_history(a1)]
    assert HistoryAction.DELETE in actions
    assert HistoryAction.CREATE in actions


def test_customers(app):
    customer = create_customer({"name": "高橋 三郎", "name_kana": "タカハシ サブロウ", "email": "t@example.com"})
    assert [row.name for row in list_customers("タカハシ")] == ["高橋 三郎"]
    update_customer(customer.id, {"phone_number": "090-0000-0000"})
    assert db.session.get(Customer, customer.id).phone_number == "090-0000-0000"
    with pytest.raises(ValueError):
        create_customer({"name": ""})
    with pytest.raises(ValueError):
        create_customer({"name": "x", "email": "not-an-email"})
    with pytest.raises(CustomerNotFoundError):
        update_customer(9999, {"name": "x"})


def test_backfill_moves_inconsistent_active_contracts(app, contract_id):
    yamada = contract_id("A-2", "左半分")
    suzuki = contract_id("A-3", "左半分")
    db.session.get(ContractPlot, yamada).payment_status = PaymentStatus.REFUNDED
    db.session.get(ContractPlot, suzuki).payment_status = PaymentStatus.OVERDUE
    db.session.commit()

    summary = backfill_contract_statuses()
    assert summary == {"checked": 2, "cancelled": 1, "suspended": 1}
    assert contract_plot_by_id(yamada, include_deleted=True).contract_status == ContractStatus.CANCELLED
    assert contract_plot_by_id(suzuki).contract_status == ContractStatus.SUSPENDED


def test_inventory_summary_counts_partial_plots_fractionally(app):
    summary = overall_summary()
    assert summary["total_count"] == 4
    assert summary["used_count"] == Decimal("1.50")
    assert summary["remaining_count"] == Decimal("2.50")
    assert summary["usage_rate"] == Decimal("37.5")
    assert summary["total_area"] == Decimal("12.60")
    assert summary["remaining_area"] == Decimal("7.20")

    sections = section_summary()
    assert [(item["period"], item["section"]) for item in sections] == [("1期", "A"), ("2期", "B")]
    assert sections[1]["used_count"] == Decimal("0")
    assert [item["section"] for item in section_summary("2期")] == ["B"]
