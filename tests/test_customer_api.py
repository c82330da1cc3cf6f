"""Integration tests for the customer API.

Uses the Flask test client with an in-memory SQLite database.
"""

import pytest

from app import create_app
from app.domain.exceptions import AppError, RepositoryError, ValidationError
from app.domain.models import MassMsg


def _sync(client, customers, ext_corp_id="corp1"):
    resp = client.post(
        "/customers/sync", json={"ext_corp_id": ext_corp_id, "customers": customers},
    )
    return resp.status_code, resp.get_json()


class TestCustomerWrites:
    def test_sync_then_list(self, client):
        status, body = _sync(client, [
            {"ext_customer_id": "wm-1", "name": "Alice", "gender": 2},
            {"ext_customer_id": "wm-2", "name": "", "avatar": ""},
        ])
        assert status == 201
        assert body["data"] == {"ext_corp_id": "corp1", "upserted": 2}

        resp = client.get("/customers?ext_corp_id=corp1")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["total"] == 2
        assert data["page"] == 1
        assert data["page_size"] == 10
        names = [item["name"] for item in data["items"]]
        assert names == ["Alice", "未知"]
        assert data["items"][1]["avatar"].endswith("avatar.svg")

    def test_sync_twice_keeps_one_row(self, client):
        _sync(client, [{"ext_customer_id": "wm-1", "name": "Before"}])
        _sync(client, [{"ext_customer_id": "wm-1", "name": "After", "position": "CTO"}])

        data = client.get("/customers?ext_corp_id=corp1").get_json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["name"] == "After"
        assert data["items"][0]["position"] == "CTO"

    def test_put_upserts_single_customer(self, client):
        resp = client.put("/customers", json={
            "ext_corp_id": "corp1",
            "ext_customer_id": "wm-9",
            "name": "Solo",
            "type": 2,
            "external_profile": {"external_corp_name": "Solo Inc"},
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["ext_customer_id"] == "wm-9"
        assert data["type"] == 2
        assert data["external_profile"]["external_corp_name"] == "Solo Inc"

        resp = client.put("/customers", json={
            "ext_corp_id": "corp1", "ext_customer_id": "wm-9", "name": "Renamed",
        })
        assert resp.get_json()["data"]["id"] == data["id"]
        assert resp.get_json()["data"]["name"] == "Renamed"

    def test_write_validation_errors(self, client):
        assert client.post("/customers/sync", json={}).status_code == 400
        assert client.post(
            "/customers/sync", json={"ext_corp_id": "corp1", "customers": []},
        ).status_code == 400
        resp = client.put("/customers", json={"ext_corp_id": "corp1", "ext_customer_id": "x", "gender": 7})
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "VALIDATION_ERROR"

    def test_sync_database_error(self, client, monkeypatch):
        from app.api import customers as customers_api

        def broken_batch_upsert(_customers):
            raise RepositoryError("Batch upsert customers failed")

        monkeypatch.setattr(
            customers_api._customer_svc._customer_repo, "batch_upsert", broken_batch_upsert,
        )
        status, body = _sync(client, [{"ext_customer_id": "wm-1"}])
        assert status == 500
        assert body["error_code"] == "DATABASE_ERROR"


class TestCustomerReads:
    def test_get_by_internal_id(self, client, crm_data):
        alice_id = crm_data["alice"].id
        resp = client.get(f"/customers/{alice_id}?ext_corp_id=corp1")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["ext_customer_id"] == "alice"
        assert len(data["staff_relations"]) == 2

        lean = client.get(f"/customers/{alice_id}?ext_corp_id=corp1&with_relations=false")
        assert "staff_relations" not in lean.get_json()["data"]

    def test_get_in_wrong_corp_is_not_found(self, client, crm_data):
        resp = client.get(f"/customers/{crm_data['alice'].id}?ext_corp_id=corp2")
        assert resp.status_code == 404
        assert resp.get_json()["error_code"] == "RESOURCE_NOT_FOUND"

    def test_corp_required(self, client):
        resp = client.get("/customers/1")
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"field": "ext_corp_id"}
        assert client.get("/customers").status_code == 400

    def test_get_by_ext_id_with_staff_filter(self, client, crm_data):
        resp = client.get("/customers/ext/alice?ext_staff_ids=s1")
        relations = resp.get_json()["data"]["staff_relations"]
        assert [r["ext_staff_id"] for r in relations] == ["s1"]

        resp = client.get("/customers/ext/alice")
        assert len(resp.get_json()["data"]["staff_relations"]) == 2

    def test_get_by_ext_id_missing(self, client):
        assert client.get("/customers/ext/ghost").status_code == 404

    def test_list_with_filters(self, client, crm_data):
        resp = client.get(
            "/customers?ext_corp_id=corp1&ext_staff_ids=s1&out_flow_status=2&page_size=1",
        )
        data = resp.get_json()["data"]
        assert data["total"] == 2
        assert [item["ext_customer_id"] for item in data["items"]] == ["alice"]

        resp = client.get("/customers?ext_corp_id=corp1&ext_tag_ids=t1,t2&gender=2")
        assert resp.get_json()["data"]["total"] == 1

    def test_list_rejects_bad_filters(self, client):
        resp = client.get(
            "/customers?ext_corp_id=corp1&start_time=2024-02-01T00:00:00&end_time=2024-01-01T00:00:00",
        )
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "VALIDATION_ERROR"
        assert client.get("/customers?ext_corp_id=corp1&gender=abc").status_code == 400

    def test_mass_msg(self, client, db_session):
        msg = MassMsg(ext_corp_id="corp1", title="Hello")
        db_session.add(msg)
        db_session.commit()
        assert client.get(f"/mass-msgs/{msg.id}").get_json()["data"]["title"] == "Hello"
        assert client.get("/mass-msgs/424242").status_code == 404


class TestExportAndSummary:
    def test_export(self, client, crm_data):
        resp = client.get("/customers/export?ext_corp_id=corp1")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["total"] == 4
        assert [row["status"] for row in data["items"]] == ["未流失", "已流失", "未流失", "未流失"]

    def test_relation_export(self, client, crm_data):
        data = client.get("/customers/export/relations?ext_corp_id=corp1&channel_type=2").get_json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["customer_name"] == "Bob"

    def test_relation_export_rejects_staff_filter(self, client, crm_data):
        resp = client.get("/customers/export/relations?ext_corp_id=corp1&ext_staff_ids=s1")
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "UNSUPPORTED_FILTER"
        assert resp.get_json()["details"] == {"query": "query_export", "filter": "ext_staff_ids"}

    def test_summary(self, client, crm_data):
        resp = client.get("/customers/summary?ext_corp_id=corp1&corp_name=Acme")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["corp_name"] == "Acme"
        assert data["total_staffs_num"] == 3
        assert data["total_customers_num"] == 3


class TestAppErrorHandlers:
    def test_global_error_handlers_404_app_error_500(self):
        test_app = create_app("testing")
        test_app.config["PROPAGATE_EXCEPTIONS"] = False

        @test_app.route("/raise-app-error")
        def raise_app_error():
            raise AppError("boom", "CUSTOM_ERROR", 418)

        @test_app.route("/raise-validation-error")
        def raise_validation_error():
            raise ValidationError("bad input", details={"field": "name"})

        @test_app.route("/raise-500")
        def raise_500():
            raise RuntimeError("boom")

        client = test_app.test_client()
        not_found = client.get("/does-not-exist")
        assert not_found.status_code == 404
        assert not_found.get_json()["error_code"] == "NOT_FOUND"

        app_error = client.get("/raise-app-error")
        assert app_error.status_code == 418
        assert app_error.get_json()["error_code"] == "CUSTOM_ERROR"
        assert "details" not in app_error.get_json()

        invalid = client.get("/raise-validation-error")
        assert invalid.status_code == 400
        assert invalid.get_json()["details"] == {"field": "name"}

        internal = client.get("/raise-500")
        assert internal.status_code == 500
        assert internal.get_json()["error_code"] == "INTERNAL_ERROR"

    @pytest.mark.parametrize("url", [
        "/customers/export?ext_corp_id=corp1",
        "/customers/export/relations?ext_corp_id=corp1",
        "/customers?ext_corp_id=corp1",
    ])
    def test_empty_corp_pages(self, client, url):
        data = client.get(url).get_json()["data"]
        assert data == {"items": [], "total": 0, "page": 1, "page_size": 10}
