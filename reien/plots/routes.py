from __future__ import annotations

from flask import request
from flask_login import current_user, login_required

from reien.core.permissions import MANAGE_ROLES, require_role, require_write
from reien.core.utils import ok
from reien.plots import contract_status, plots_bp
from reien.plots.inventory import (
    calculate_available_area,
    get_available_area_options,
    validate_contract_area,
)
from reien.plots.payloads import (
    buried_person_payload,
    contract_payload,
    customer_payload,
    history_payload,
    invoice_payload,
    payment_payload,
    plot_payload,
    summary_payload,
)
from reien.plots.services import (
    add_buried_person,
    change_contract_status,
    contract_plot_by_id,
    contract_plots_for_plot,
    create_contract_plot,
    create_customer,
    create_physical_plot,
    customer_by_id,
    delete_contract_plot,
    issue_invoice,
    list_customers,
    list_physical_plots,
    physical_plot_by_id,
    plot_history,
    register_payment,
    request_cancellation,
    transfer_ownership,
    update_contract_plot,
    update_customer,
)
from reien.plots.summary import overall_summary, section_summary


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _reason(data: dict) -> str | None:
    return (data.get("reason") or "").strip() or None


@plots_bp.get("/plots")
@login_required
def plots_index():
    filters = {
        "area_name": request.args.get("area_name", "").strip(),
        "status": request.args.get("status", "").strip(),
        "search": request.args.get("search", "").strip(),
    }
    return ok([plot_payload(plot) for plot in list_physical_plots(filters)])


@plots_bp.post("/plots")
@login_required
@require_role(*MANAGE_ROLES)
def plots_create():
    plot = create_physical_plot(_payload())
    return ok(plot_payload(plot, calculate_available_area(plot.id)), 201)


@plots_bp.get("/plots/<int:plot_id>")
@login_required
def plot_detail(plot_id: int):
    plot = physical_plot_by_id(plot_id)
    data = plot_payload(plot, calculate_available_area(plot.id))
    data["contracts"] = [contract_payload(row) for row in contract_plots_for_plot(plot.id)]
    return ok(data)


@plots_bp.get("/plots/<int:plot_id>/area-options")
@login_required
def plot_area_options(plot_id: int):
    options = get_available_area_options(plot_id)
    return ok({"plot_id": plot_id, "options": [str(size) for size in options]})


@plots_bp.post("/plots/<int:plot_id>/area-check")
@login_required
def plot_area_check(plot_id: int):
    data = _payload()
    exclude = data.get("exclude_contract_plot_id")
    result = validate_contract_area(
        plot_id,
        data.get("contract_area_sqm"),
        exclude_contract_plot_id=int(exclude) if str(exclude or "").isdigit() else None,
    )
    return ok(result.as_dict())


@plots_bp.get("/plots/<int:plot_id>/contracts")
@login_required
def plot_contracts(plot_id: int):
    include_deleted = request.args.get("include_deleted", "").lower() in {"1", "true", "yes"}
    rows = contract_plots_for_plot(plot_id, include_deleted=include_deleted)
    return ok([contract_payload(row) for row in rows])


@plots_bp.post("/plots/<int:plot_id>/contracts")
@login_required
@require_write
def plot_contracts_create(plot_id: int):
    contract_plot = create_contract_plot(plot_id, _payload())
    return ok(contract_payload(contract_plot, detail=True), 201)


@plots_bp.get("/plots/<int:plot_id>/history")
@login_required
def plot_history_index(plot_id: int):
    limit = request.args.get("limit", default=200, type=int)
    return ok([history_payload(entry) for entry in plot_history(plot_id, limit=limit)])


@plots_bp.get("/inventory/summary")
@login_required
def inventory_summary():
    return ok(summary_payload(overall_summary()))


@plots_bp.get("/inventory/sections")
@login_required
def inventory_sections():
    area_name = request.args.get("area_name", "").strip() or None
    return ok([summary_payload(item) for item in section_summary(area_name)])


@plots_bp.get("/contracts/<int:contract_plot_id>")
@login_required
def contract_detail(contract_plot_id: int):
    contract_plot = contract_plot_by_id(contract_plot_id, include_deleted=True)
    return ok(contract_payload(contract_plot, detail=True))


@plots_bp.put("/contracts/<int:contract_plot_id>")
@login_required
@require_write
def contract_update(contract_plot_id: int):
    data = _payload()
    changes = {key: value for key, value in data.items() if key != "reason"}
    contract_plot = update_contract_plot(contract_plot_id, changes, reason=_reason(data))
    return ok(contract_payload(contract_plot, detail=True))


@plots_bp.delete("/contracts/<int:contract_plot_id>")
@login_required
@require_role(*MANAGE_ROLES)
def contract_delete(contract_plot_id: int):
    data = _payload()
    delete_contract_plot(contract_plot_id, reason=_reason(data))
    return ok({"id": contract_plot_id, "deleted": True})


@plots_bp.get("/contracts/<int:contract_plot_id>/permissions")
@login_required
def contract_permissions(contract_plot_id: int):
    contract_plot = contract_plot_by_id(contract_plot_id, include_deleted=True)
    return ok(contract_status.contract_permissions(contract_plot.contract_status))


@plots_bp.post("/contracts/<int:contract_plot_id>/status")
@login_required
@require_write
def contract_status_change(contract_plot_id: int):
    data = _payload()
    contract_plot = change_contract_status(
        contract_plot_id,
        data.get("status"),
        payment_status=data.get("payment_status"),
        reason=_reason(data),
    )
    return ok(contract_payload(contract_plot))


@plots_bp.post("/contracts/<int:contract_plot_id>/cancellation")
@login_required
@require_write
def contract_cancellation(contract_plot_id: int):
    data = _payload()
    contract_plot = request_cancellation(
        contract_plot_id,
        payment_status=data.get("payment_status"),
        reason=_reason(data),
    )
    return ok(contract_payload(contract_plot))


@plots_bp.post("/contracts/<int:contract_plot_id>/payments")
@login_required
@require_write
def contract_payments_create(contract_plot_id: int):
    payment = register_payment(contract_plot_id, _payload(), current_user.id)
    return ok(payment_payload(payment), 201)


@plots_bp.post("/contracts/<int:contract_plot_id>/invoices")
@login_required
@require_write
def contract_invoices_create(contract_plot_id: int):
    invoice = issue_invoice(contract_plot_id, _payload(), current_user.id)
    return ok(invoice_payload(invoice), 201)


@plots_bp.post("/contracts/<int:contract_plot_id>/buried-persons")
@login_required
@require_write
def contract_buried_persons_create(contract_plot_id: int):
    person = add_buried_person(contract_plot_id, _payload())
    return ok(buried_person_payload(person), 201)


@plots_bp.post("/contracts/<int:contract_plot_id>/transfer")
@login_required
@require_write
def contract_transfer(contract_plot_id: int):
    data = _payload()
    successor = transfer_ownership(contract_plot_id, data, reason=_reason(data))
    return ok(contract_payload(successor, detail=True), 201)


@plots_bp.get("/customers")
@login_required
def customers_index():
    rows = list_customers(request.args.get("search", ""))
    return ok([customer_payload(customer) for customer in rows])


@plots_bp.post("/customers")
@login_required
@require_write
def customers_create():
    return ok(customer_payload(create_customer(_payload())), 201)


@plots_bp.get("/customers/<int:customer_id>")
@login_required
def customer_detail(customer_id: int):
    customer = customer_by_id(customer_id)
    data = customer_payload(customer)
    data["contracts"] = [contract_payload(row) for row in customer.contract_plots if not row.is_deleted]
    return ok(data)


@plots_bp.put("/customers/<int:customer_id>")
@login_required
@require_write
def customer_update(customer_id: int):
    return ok(customer_payload(update_customer(customer_id, _payload())))
