from __future__ import annotations

from reien.core.enums import PhysicalPlotStatus
from reien.core.extensions import db
from reien.core.models import History, PhysicalPlot


def _error(response) -> dict:
    body = response.get_json()
    assert body["success"] is False
    return body["error"]


def test_api_requires_login(client):
    response = client.get("/api/v1/plots")
    assert response.status_code == 401
    assert _error(response)["code"] == "UNAUTHORIZED"


def test_login_rejects_bad_password(client):
    response = client.post("/auth/login", json={"email": "admin@reien.local", "password": "nope"})
    assert response.status_code == 401
    assert _error(response)["code"] == "INVALID_CREDENTIALS"


def test_viewer_is_read_only(client, login_viewer, plot_id):
    assert login_viewer().status_code == 200
    listing = client.get("/api/v1/plots")
    assert listing.status_code == 200
    assert [row["plot_number"] for row in listing.get_json()["data"]] == ["A-1", "A-2", "A-3", "B-1"]

    response = client.post(f"/api/v1/plots/{plot_id('A-1')}/contracts", json={"contract_area_sqm": "1.8"})
    assert response.status_code == 403
    assert _error(response)["code"] == "FORBIDDEN"


def test_plot_detail_and_area_helpers(client, login_operator, plot_id):
    login_operator()
    a2 = plot_id("A-2")

    detail = client.get(f"/api/v1/plots/{a2}").get_json()["data"]
    assert detail["status"] == "partially_sold"
    assert detail["available_area"] == "1.80"
    assert [row["location_description"] for row in detail["contracts"]] == ["左半分"]

    options = client.get(f"/api/v1/plots/{plot_id('A-1')}/area-options").get_json()["data"]
    assert options["options"] == ["1.80", "3.60"]

    check = client.post(f"/api/v1/plots/{a2}/area-check", json={"contract_area_sqm": "2.0"})
    assert check.status_code == 200
    data = check.get_json()["data"]
    assert data["is_valid"] is False
    assert data["available_area"] == "1.80"
    assert "1.8" in data["message"]

    assert client.get("/api/v1/plots/9999").status_code == 404


def test_area_check_never_fails_on_bad_numbers(client, login_operator, plot_id):
    login_operator()
    a1 = plot_id("A-1")
    for value in ("1e30", "1000000", "1.801", "abc"):
        response = client.post(f"/api/v1/plots/{a1}/area-check", json={"contract_area_sqm": value})
        assert response.status_code == 200
        assert response.get_json()["data"]["is_valid"] is False

    rejected = client.post(f"/api/v1/plots/{a1}/contracts", json={"contract_area_sqm": "1e30"})
    assert rejected.status_code == 400
    assert _error(rejected)["code"] == "VALIDATION_ERROR"


def test_area_messages_follow_session_language(client, login_operator, plot_id):
    login_operator()
    client.post("/auth/lang", json={"lang": "en"})
    check = client.post(f"/api/v1/plots/{plot_id('A-2')}/area-check", json={"contract_area_sqm": "2"})
    assert check.get_json()["data"]["message"] == "requested area 2㎡ exceeds available area 1.8㎡"


def test_operator_contract_flow(client, login_operator, plot_id):
    login_operator()
    a1 = plot_id("A-1")

    created = client.post(
        f"/api/v1/plots/{a1}/contracts",
        json={"contract_area_sqm": "1.8", "location_description": "左半分", "contract_status": "reserved"},
    )
    assert created.status_code == 201
    contract = created.get_json()["data"]
    assert contract["contract_status"] == "reserved"
    assert contract["contract_status_label"] == "予約済み"
    assert db.session.get(PhysicalPlot, a1).status == PhysicalPlotStatus.PARTIALLY_SOLD

    too_big = client.post(f"/api/v1/plots/{a1}/contracts", json={"contract_area_sqm": "3.6"})
    assert too_big.status_code == 400
    error = _error(too_big)
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"] == {"available_area": "1.80"}

    activated = client.post(
        f"/api/v1/contracts/{contract['id']}/status",
        json={"status": "active", "payment_status": "paid", "reason": "本契約"},
    )
    assert activated.status_code == 200
    assert activated.get_json()["data"]["payment_status"] == "paid"

    permissions = client.get(f"/api/v1/contracts/{contract['id']}/permissions").get_json()["data"]
    assert permissions["status"] == "active"
    assert "transfer_ownership" in permissions["allowed_operations"]

    invoice = client.post(f"/api/v1/contracts/{contract['id']}/invoices", json={"amount": "450000"})
    assert invoice.status_code == 201
    assert invoice.get_json()["data"]["amount_label"] == "¥450,000"

    entry = History.query.filter_by(contract_plot_id=contract["id"]).order_by(History.id.desc()).first()
    assert entry.changed_by == "受付担当"

    history = client.get(f"/api/v1/plots/{a1}/history").get_json()["data"]
    assert {row["action_type"] for row in history} >= {"CREATE", "STATUS_CHANGE"}


def test_lifecycle_errors_map_to_status_codes(client, login_operator, contract_id):
    login_operator()
    tanaka = contract_id("A-3", "右半分")
    suzuki = contract_id("A-3", "左半分")

    transition = client.post(f"/api/v1/contracts/{tanaka}/status", json={"status": "terminated"})
    assert transition.status_code == 409
    assert _error(transition)["details"] == {"from": "reserved", "to": "terminated"}

    operation = client.post(f"/api/v1/contracts/{tanaka}/buried-persons", json={"name": "田中 花"})
    assert operation.status_code == 409
    assert _error(operation)["code"] == "OPERATION_NOT_ALLOWED"

    payment = client.post(
        f"/api/v1/contracts/{suzuki}/payments",
        json={"amount": "1000", "payment_status": "overdue"},
    )
    assert payment.status_code == 422
    assert _error(payment)["code"] == "PAYMENT_STATUS_MISMATCH"

    bad_input = client.post(f"/api/v1/contracts/{suzuki}/payments", json={"amount": "abc", "payment_status": "paid"})
    assert bad_input.status_code == 400

    missing = client.get("/api/v1/contracts/9999")
    assert missing.status_code == 404
    assert _error(missing)["code"] == "NOT_FOUND"


def test_delete_needs_manager_role(client, login_operator, contract_id):
    login_operator()
    response = client.delete(f"/api/v1/contracts/{contract_id('A-3', '右半分')}")
    assert response.status_code == 403


def test_admin_registers_plot_and_deletes_draft(client, login_admin, plot_id):
    login_admin()
    created = client.post("/api/v1/plots", json={"plot_number": "C-1", "area_name": "3期", "area_sqm": "3.6"})
    assert created.status_code == 201
    plot = created.get_json()["data"]
    assert plot["status"] == "available"
    assert plot["available_area"] == "3.60"

    draft = client.post(f"/api/v1/plots/{plot['id']}/contracts", json={"contract_area_sqm": "3.6"})
    draft_id = draft.get_json()["data"]["id"]
    assert client.get(f"/api/v1/plots/{plot['id']}").get_json()["data"]["status"] == "sold_out"

    deleted = client.delete(f"/api/v1/contracts/{draft_id}")
    assert deleted.status_code == 200
    assert client.get(f"/api/v1/plots/{plot['id']}").get_json()["data"]["status"] == "available"
    assert client.get(f"/api/v1/contracts/{draft_id}").get_json()["data"]["is_deleted"] is True


def test_transfer_and_customers_endpoints(client, login_operator, contract_id):
    login_operator()
    customer = client.post("/api/v1/customers", json={"name": "山田 次郎"})
    assert customer.status_code == 201
    heir_id = customer.get_json()["data"]["id"]

    yamada = contract_id("A-2", "左半分")
    transfer = client.post(f"/api/v1/contracts/{yamada}/transfer", json={"customer_id": heir_id})
    assert transfer.status_code == 201
    successor = transfer.get_json()["data"]
    assert successor["transferred_from_id"] == yamada
    assert successor["customer_name"] == "山田 次郎"

    detail = client.get(f"/api/v1/customers/{heir_id}").get_json()["data"]
    assert [row["id"] for row in detail["contracts"]] == [successor["id"]]

    updated = client.put(f"/api/v1/customers/{heir_id}", json={"address": "東京都港区1-1"})
    assert updated.get_json()["data"]["address"] == "東京都港区1-1"


def test_inventory_summary_endpoints(client, login_viewer):
    login_viewer()
    summary = client.get("/api/v1/inventory/summary").get_json()["data"]
    assert summary["total_count"] == 4
    assert summary["used_count"] == "1.50"
    assert summary["usage_rate"] == "37.5"

    sections = client.get("/api/v1/inventory/sections", query_string={"area_name": "1期"}).get_json()["data"]
    assert [(row["period"], row["section"]) for row in sections] == [("1期", "A")]
