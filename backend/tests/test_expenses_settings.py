"""
Store settings and expense tests.

Verifies:
- The settings row is created on first read and edited by Super Admin only
- tax_rate is a percentage with at most two decimals between 0 and 100
- Expenses are written by Super Admin, read by Stock Manager, in exact cents
"""

import pytest

from pharmapos.services import settings_service
from pharmapos.services.inventory_service import business_today
from pharmapos.validation import ValidationError


# =============================================================================
# SETTINGS
# =============================================================================


class TestSettings:

    def test_default_row(self, client, db_session, cashier_headers):
        resp = client.get("/api/settings", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["settings"]["company_name"] == "PharmaPOS"
        assert resp.json["settings"]["tax_rate"] == "0.00"

    def test_update(self, client, db_session, admin_headers, super_admin):
        resp = client.patch("/api/settings", headers=admin_headers, json={
            "company_name": "  Corner Pharmacy ",
            "tax_rate": "7.25",
            "currency": "kes",
        })
        assert resp.status_code == 200
        settings = resp.json["settings"]
        assert settings["company_name"] == "Corner Pharmacy"
        assert settings["tax_rate"] == "7.25"
        assert settings["tax_rate_bps"] == 725
        assert settings["currency"] == "KES"
        assert settings["updated_by_user_id"] == super_admin.id

    @pytest.mark.parametrize(
        "payload",
        [
            {"tax_rate": "-1"},
            {"tax_rate": "100.01"},
            {"tax_rate": "7.255"},
            {"tax_rate": "abc"},
            {"tax_rate": True},
            {"company_name": "   "},
            {"currency": "X"},
            {"theme": "dark"},
        ],
    )
    def test_invalid_updates(self, client, db_session, admin_headers, payload):
        assert client.patch("/api/settings", headers=admin_headers, json=payload).status_code == 400

    def test_rejected_update_leaves_row(self, db_session, super_admin):
        settings_service.update_settings(payload={"tax_rate": "16"}, user_id=super_admin.id)
        with pytest.raises(ValidationError):
            settings_service.update_settings(payload={"tax_rate": "16", "theme": "dark"}, user_id=super_admin.id)
        assert settings_service.get_tax_rate_bps() == 1600

    @pytest.mark.parametrize("value,bps", [("0", 0), ("16", 1600), (8.5, 850), (100, 10000)])
    def test_tax_rate_to_bps(self, value, bps):
        assert settings_service.tax_rate_to_bps(value) == bps


# =============================================================================
# EXPENSES
# =============================================================================


class TestExpenses:

    def test_create_and_list(self, client, db_session, admin_headers, manager_headers, super_admin):
        for description, amount, category in [
            ("Rent", "1200.00", "Premises"),
            ("Electricity", "85.40", "Utilities"),
        ]:
            resp = client.post("/api/expenses", headers=admin_headers, json={
                "description": description,
                "amount": amount,
                "category": category,
                "expense_date": "2026-03-01",
            })
            assert resp.status_code == 201
            assert resp.json["expense"]["created_by_user_id"] == super_admin.id

        listed = client.get("/api/expenses?start_date=2026-03-01&end_date=2026-03-31", headers=manager_headers)
        assert listed.status_code == 200
        assert listed.json["count"] == 2
        assert listed.json["total_amount"] == "1285.40"

        utilities = client.get("/api/expenses?category=Utilities", headers=manager_headers).json
        assert [e["description"] for e in utilities["items"]] == ["Electricity"]

    def test_date_defaults_to_today(self, client, db_session, admin_headers):
        resp = client.post("/api/expenses", headers=admin_headers, json={
            "description": "Cleaning supplies", "amount": "12.00",
        })
        assert resp.json["expense"]["expense_date"] == business_today().isoformat()

    @pytest.mark.parametrize(
        "payload",
        [
            {"description": "Rent"},
            {"amount": "10.00"},
            {"description": "Rent", "amount": "0"},
            {"description": "Rent", "amount": "-5.00"},
            {"description": "Rent", "amount": "1.005"},
            {"description": "  ", "amount": "1.00"},
            {"description": "Rent", "amount": "1.00", "expense_date": "03/01/2026"},
            {"description": "Rent", "amount": "1.00", "paid_by": "cash"},
        ],
    )
    def test_invalid_expenses(self, client, db_session, admin_headers, payload):
        assert client.post("/api/expenses", headers=admin_headers, json=payload).status_code == 400

    def test_update_and_delete(self, client, db_session, admin_headers):
        created = client.post("/api/expenses", headers=admin_headers, json={
            "description": "Courier", "amount": "20.00",
        }).json["expense"]

        resp = client.patch(f"/api/expenses/{created['id']}", headers=admin_headers, json={"amount": "22.50"})
        assert resp.status_code == 200
        assert resp.json["expense"]["amount"] == "22.50"

        assert client.delete(f"/api/expenses/{created['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/expenses/{created['id']}", headers=admin_headers).status_code == 404

    def test_manager_cannot_write(self, client, db_session, manager_headers):
        resp = client.post("/api/expenses", headers=manager_headers, json={
            "description": "Snacks", "amount": "5.00",
        })
        assert resp.status_code == 403

    def test_cashier_cannot_read(self, client, db_session, cashier_headers):
        assert client.get("/api/expenses", headers=cashier_headers).status_code == 403
