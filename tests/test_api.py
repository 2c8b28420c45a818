"""
API flow tests.

Drives the request lifecycle, stock and debt endpoints over HTTP and checks
status codes and response bodies.
"""

import pytest

from labloan.services import stock_ledger
from labloan.services.concurrency import atomic


def _create_body(ref, quantity, **extra):
    body = {
        "lines": [{"category": ref.category, "material_id": ref.material_id, "quantity": quantity}],
        "pickup_date": "2025-03-12",
        "return_due_date": "2025-03-14",
    }
    body.update(extra)
    return body


@pytest.fixture
def api(client, headers_for, clock, notifier):
    """(method, path, identity, json) -> response"""

    def _call(method, path, identity, json=None):
        return getattr(client, method.lower())(path, json=json, headers=headers_for(identity))

    return _call


# =============================================================================
# CREATE
# =============================================================================


class TestCreateEndpoint:

    def test_student_creates_pending_request(self, api, db_session, student, ethanol):
        resp = api("POST", "/api/requests", student, _create_body(ethanol, 30))
        data = resp.get_json()["request"]

        assert resp.status_code == 201
        assert data["status"] == "pending"
        assert data["lines"][0]["material_name"] == "Ethanol 96%"
        assert data["lines"][0]["unit"] == "ml"
        assert stock_ledger.get_stock(db_session, ethanol) == 100

    def test_instructor_request_is_approved_on_creation(self, api, db_session, instructor, ethanol):
        resp = api("POST", "/api/requests", instructor, _create_body(ethanol, 30))

        assert resp.status_code == 201
        assert resp.get_json()["request"]["status"] == "approved"
        assert stock_ledger.get_stock(db_session, ethanol) == 70

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda b: b.update(extra_field=1),
            lambda b: b.pop("pickup_date"),
            lambda b: b.update(pickup_date="12/03/2025"),
            lambda b: b.update(lines=[]),
            lambda b: b["lines"][0].update(quantity=0),
            lambda b: b["lines"][0].update(quantity="1.5"),
            lambda b: b["lines"][0].update(category="plasma"),
        ],
    )
    def test_invalid_bodies_return_400(self, api, db_session, student, ethanol, mutate):
        body = _create_body(ethanol, 5)
        mutate(body)
        resp = api("POST", "/api/requests", student, body)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_non_json_body_returns_400(self, client, headers_for, db_session, student):
        resp = client.post("/api/requests", data="nope", headers=headers_for(student))
        assert resp.status_code == 400


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycleEndpoints:

    def test_full_loan_over_http(self, api, db_session, student, instructor, storekeeper, ethanol, beaker):
        body = _create_body(ethanol, 5)
        body["lines"].append({"category": "lab_item", "material_id": beaker.material_id, "quantity": 6})
        created = api("POST", "/api/requests", student, body).get_json()["request"]
        request_id = created["id"]
        liquid_line, beaker_line = [line["id"] for line in created["lines"]]

        approved = api("PUT", f"/api/requests/{request_id}/approve", instructor)
        assert approved.status_code == 200
        assert approved.get_json()["request"]["status"] == "approved"

        delivered = api(
            "PUT", f"/api/requests/{request_id}/deliver", storekeeper,
            {"lines": [
                {"line_id": liquid_line, "delivered_quantity": 5},
                {"line_id": beaker_line, "delivered_quantity": 6},
            ]},
        )
        assert delivered.status_code == 200
        assert len(delivered.get_json()["request"]["debts"]) == 2

        partial = api(
            "PUT", f"/api/requests/{request_id}/return", storekeeper,
            {"lines": [{"line_id": beaker_line, "returned_quantity": 3}]},
        )
        result = partial.get_json()["result"]
        assert partial.status_code == 200
        assert result["closed"] is False
        assert {d["request_line_id"]: d["pending_quantity"] for d in result["open_debts"]} == {
            liquid_line: 5, beaker_line: 3,
        }

        final = api(
            "PUT", f"/api/requests/{request_id}/return", storekeeper,
            {"lines": [
                {"line_id": beaker_line, "returned_quantity": 3},
                {"line_id": liquid_line, "returned_quantity": 5},
            ]},
        )
        assert final.get_json()["result"]["closed"] is True

        gone = api("GET", f"/api/requests/{request_id}", storekeeper)
        assert gone.status_code == 404
        assert stock_ledger.get_stock(db_session, ethanol) == 95

    def test_over_return_is_400(self, api, db_session, instructor, storekeeper, ethanol):
        created = api("POST", "/api/requests", instructor, _create_body(ethanol, 5)).get_json()["request"]
        line_id = created["lines"][0]["id"]
        api(
            "PUT", f"/api/requests/{created['id']}/deliver", storekeeper,
            {"lines": [{"line_id": line_id, "delivered_quantity": 5}]},
        )

        resp = api(
            "PUT", f"/api/requests/{created['id']}/return", storekeeper,
            {"lines": [{"line_id": line_id, "returned_quantity": 6}]},
        )
        assert resp.status_code == 400

    def test_approve_without_stock_names_material(
        self, api, db_session, student, instructor, ethanol, microscope
    ):
        body = _create_body(ethanol, 10)
        body["lines"].append({"category": "equipment", "material_id": microscope.material_id, "quantity": 3})
        request_id = api("POST", "/api/requests", student, body).get_json()["request"]["id"]

        resp = api("PUT", f"/api/requests/{request_id}/approve", instructor)
        data = resp.get_json()

        assert resp.status_code == 400
        assert data["material"] == {"category": "equipment", "material_id": microscope.material_id}
        assert data["available"] == 2
        assert stock_ledger.get_stock(db_session, ethanol) == 100

    def test_wrong_status_is_409(self, api, db_session, instructor, storekeeper, ethanol):
        request_id = api("POST", "/api/requests", instructor, _create_body(ethanol, 5)).get_json()["request"]["id"]

        assert api("PUT", f"/api/requests/{request_id}/approve", instructor).status_code == 409
        assert api("PUT", f"/api/requests/{request_id}/reject", instructor).status_code == 409

    def test_reject_returns_snapshot(self, api, db_session, student, instructor, ethanol):
        request_id = api("POST", "/api/requests", student, _create_body(ethanol, 5)).get_json()["request"]["id"]

        resp = api("PUT", f"/api/requests/{request_id}/reject", instructor)
        assert resp.status_code == 200
        assert resp.get_json()["request"]["status"] == "rejected"
        assert api("GET", f"/api/requests/{request_id}", student).status_code == 404

    def test_cancel_own_pending_deletes(self, api, db_session, student, ethanol):
        request_id = api("POST", "/api/requests", student, _create_body(ethanol, 5)).get_json()["request"]["id"]

        resp = api("PUT", f"/api/requests/{request_id}/cancel", student)
        assert resp.status_code == 200
        assert resp.get_json()["request"]["deleted"] is True

    def test_cancel_someone_elses_request_is_403(
        self, api, db_session, student, other_student, ethanol
    ):
        request_id = api("POST", "/api/requests", student, _create_body(ethanol, 5)).get_json()["request"]["id"]
        assert api("PUT", f"/api/requests/{request_id}/cancel", other_student).status_code == 403

    def test_deliver_unknown_line_is_404(self, api, db_session, instructor, storekeeper, ethanol):
        request_id = api("POST", "/api/requests", instructor, _create_body(ethanol, 5)).get_json()["request"]["id"]
        resp = api(
            "PUT", f"/api/requests/{request_id}/deliver", storekeeper,
            {"lines": [{"line_id": 999999, "delivered_quantity": 1}]},
        )
        assert resp.status_code == 404

    def test_missing_request_is_404(self, api, db_session, storekeeper):
        assert api("GET", "/api/requests/999999", storekeeper).status_code == 404

    def test_notify_overdue_before_due_is_409(self, api, db_session, instructor, storekeeper, ethanol):
        created = api("POST", "/api/requests", instructor, _create_body(ethanol, 5)).get_json()["request"]
        api(
            "PUT", f"/api/requests/{created['id']}/deliver", storekeeper,
            {"lines": [{"line_id": created["lines"][0]["id"], "delivered_quantity": 5}]},
        )
        resp = api("POST", f"/api/requests/{created['id']}/notify-overdue", storekeeper)
        assert resp.status_code == 409


# =============================================================================
# VISIBILITY
# =============================================================================


class TestListVisibility:

    def test_each_role_sees_its_slice(
        self, api, db_session, student, other_student, instructor, storekeeper, ethanol
    ):
        api("POST", "/api/requests", student, _create_body(ethanol, 1, approver_id=instructor.user_id))
        api("POST", "/api/requests", other_student, _create_body(ethanol, 1))

        def ids(identity):
            return [r["requester_id"] for r in api("GET", "/api/requests", identity).get_json()["requests"]]

        assert ids(student) == [student.user_id]
        assert ids(instructor) == [student.user_id]
        assert sorted(ids(storekeeper)) == sorted([student.user_id, other_student.user_id])

    def test_other_student_cannot_read_request(self, api, db_session, student, other_student, ethanol):
        request_id = api("POST", "/api/requests", student, _create_body(ethanol, 1)).get_json()["request"]["id"]
        assert api("GET", f"/api/requests/{request_id}", other_student).status_code == 403

    def test_debts_are_scoped(self, api, db_session, student, other_student, instructor, storekeeper, ethanol):
        created = api("POST", "/api/requests", student, _create_body(ethanol, 5)).get_json()["request"]
        api("PUT", f"/api/requests/{created['id']}/approve", instructor)
        api(
            "PUT", f"/api/requests/{created['id']}/deliver", storekeeper,
            {"lines": [{"line_id": created["lines"][0]["id"], "delivered_quantity": 5}]},
        )

        own = api("GET", "/api/debts", student).get_json()["debts"]
        assert [d["material_name"] for d in own] == ["Ethanol 96%"]
        assert api("GET", "/api/debts", other_student).get_json()["debts"] == []
        assert len(api("GET", "/api/debts", storekeeper).get_json()["debts"]) == 1


# =============================================================================
# MATERIALS
# =============================================================================


class TestMaterialEndpoints:

    def test_list_and_filter(self, api, db_session, student, ethanol, beaker):
        everything = api("GET", "/api/materials", student).get_json()["materials"]
        liquids = api("GET", "/api/materials?category=liquid", student).get_json()["materials"]

        assert {m["category"] for m in everything} == {"liquid", "lab_item"}
        assert [m["name"] for m in liquids] == ["Ethanol 96%"]

    def test_detail_includes_movements(self, api, db_session, student, beaker):
        resp = api("GET", f"/api/materials/lab-item/{beaker.material_id}", student)
        data = resp.get_json()

        assert resp.status_code == 200
        assert data["material"]["on_hand"] == 10
        assert [m["movement_type"] for m in data["movements"]] == ["opening"]

    def test_negative_limit_still_returns_one_movement(self, api, db_session, student, beaker):
        with atomic(db_session):
            stock_ledger.set_absolute(db_session, beaker, 12, actor_id=301)

        resp = api("GET", f"/api/materials/lab-item/{beaker.material_id}?limit=-1", student)

        assert resp.status_code == 200
        assert len(resp.get_json()["movements"]) == 1

    def test_adjust_negative_is_400(self, api, db_session, storekeeper, ethanol):
        resp = api(
            "POST", f"/api/materials/{ethanol.material_id}/adjust", storekeeper,
            {"category": "liquid", "quantity": -5},
        )
        assert resp.status_code == 400
        assert stock_ledger.get_stock(db_session, ethanol) == 100

    def test_adjust_unknown_material_is_404(self, api, db_session, storekeeper):
        resp = api(
            "POST", "/api/materials/999999/adjust", storekeeper,
            {"category": "solid", "quantity": 5},
        )
        assert resp.status_code == 404

    def test_bulk_adjust_reports_per_item(self, api, db_session, storekeeper, ethanol, microscope):
        resp = api(
            "POST", "/api/materials/bulk-adjust", storekeeper,
            {"adjustments": [
                {"category": "liquid", "material_id": ethanol.material_id, "delta": 25},
                {"category": "equipment", "material_id": microscope.material_id, "delta": -9},
            ]},
        )
        data = resp.get_json()

        assert resp.status_code == 400
        assert data["applied"] == 1
        assert [r["ok"] for r in data["results"]] == [True, False]
        assert stock_ledger.get_stock(db_session, ethanol) == 125
        assert stock_ledger.get_stock(db_session, microscope) == 2

    def test_bulk_adjust_all_ok_is_200(self, api, db_session, storekeeper, ethanol):
        resp = api(
            "POST", "/api/materials/bulk-adjust", storekeeper,
            {"adjustments": [{"category": "liquid", "material_id": ethanol.material_id, "delta": -20}]},
        )
        assert resp.status_code == 200
        assert resp.get_json()["results"][0]["quantity"] == 80


# =============================================================================
# MAINTENANCE
# =============================================================================


class TestMaintenanceEndpoints:

    def test_run_expiry_sweep(self, api, db_session, clock, student, admin, ethanol):
        request_id = api("POST", "/api/requests", student, _create_body(ethanol, 5)).get_json()["request"]["id"]
        clock.advance(days=3)

        resp = api("POST", "/api/maintenance/sweeps/expiry", admin)
        assert resp.status_code == 200
        assert resp.get_json()["report"]["processed"] == [request_id]

    def test_unknown_sweep_is_404(self, api, db_session, admin):
        assert api("POST", "/api/maintenance/sweeps/nope", admin).status_code == 404
