"""
Sale settlement tests.

Verifies:
- A sale, its items and its stock movements are recorded together
- Totals are computed in cents (discount, tax)
- Insufficient stock on any line rolls back the whole sale and names the batch
- Expired, inactive and mispriced lines are rejected
- Cashiers only see their own sales
"""

from datetime import timedelta

import pytest

from pharmapos.models import Sale, SaleItem, InventoryMovement, SecurityEvent
from pharmapos.services import sales_service, inventory_service, settings_service
from pharmapos.services.inventory_service import InsufficientStockError
from pharmapos.services.sales_service import PriceOverrideError, SaleError


def _sell(client, headers, items, **extra):
    body = {"items": items, "payment_method": "cash"}
    body.update(extra)
    return client.post("/api/sales", headers=headers, json=body)


# =============================================================================
# SUCCESSFUL SETTLEMENT
# =============================================================================


class TestSettleSale:

    def test_sale_records_items_and_movements(self, client, db_session, cashier, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 3}])
        assert resp.status_code == 201

        sale = resp.json["sale"]
        assert sale["receipt_number"] == "RCPT-000001"
        assert sale["cashier_id"] == cashier.id
        assert sale["subtotal"] == "30.00"
        assert sale["total"] == "30.00"
        assert len(sale["items"]) == 1
        assert sale["items"][0]["unit_price"] == "10.00"

        db_session.refresh(batch)
        assert batch.quantity == 7

        movements = db_session.query(InventoryMovement).filter_by(sale_id=sale["id"]).all()
        assert [(m.batch_id, m.quantity_delta, m.change_type) for m in movements] == [
            (batch.id, -3, "sale")
        ]
        assert inventory_service.verify_ledger() == []

    def test_multi_line_sale(self, client, db_session, cashier_headers, product, batch, new_product, new_batch):
        other = new_product(name="Amoxicillin 250mg", barcode="5000000000001")
        other_batch = new_batch(other, quantity=5, price=750, batch_number="AMX-1")

        resp = _sell(client, cashier_headers, [
            {"batch_id": batch.id, "quantity": 2},
            {"batch_id": other_batch.id, "quantity": 1},
        ])
        assert resp.status_code == 201
        assert resp.json["sale"]["total"] == "27.50"

        db_session.refresh(batch)
        db_session.refresh(other_batch)
        assert batch.quantity == 8
        assert other_batch.quantity == 4

    def test_receipt_numbers_increase(self, client, db_session, cashier_headers, batch):
        first = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}])
        second = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}])
        assert first.json["sale"]["receipt_number"] == "RCPT-000001"
        assert second.json["sale"]["receipt_number"] == "RCPT-000002"

    def test_tax_and_discounts(self, client, db_session, cashier_headers, super_admin, batch):
        settings_service.update_settings(payload={"tax_rate": "16"}, user_id=super_admin.id)

        resp = _sell(client, cashier_headers, [
            {"batch_id": batch.id, "quantity": 3, "discount": "1.00"},
        ], discount="4.00")
        assert resp.status_code == 201
        sale = resp.json["sale"]
        # 3 x 10.00 - 1.00 = 29.00; minus 4.00 = 25.00; tax 16% = 4.00
        assert sale["subtotal"] == "29.00"
        assert sale["discount"] == "4.00"
        assert sale["tax"] == "4.00"
        assert sale["total"] == "29.00"

    def test_customer_attached(self, client, db_session, cashier_headers, batch):
        customer = client.post("/api/customers", headers=cashier_headers, json={"name": "Walk-in Jane"})
        assert customer.status_code == 201
        customer_id = customer.json["customer"]["id"]

        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}], customer_id=customer_id)
        assert resp.status_code == 201
        assert resp.json["sale"]["customer_id"] == customer_id

    def test_sell_entire_batch(self, client, db_session, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 10}])
        assert resp.status_code == 201
        db_session.refresh(batch)
        assert batch.quantity == 0


# =============================================================================
# ATOMIC ROLLBACK
# =============================================================================


class TestInsufficientStock:

    def test_single_line_over_stock(self, client, db_session, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 11}])
        assert resp.status_code == 409
        assert resp.json["error"] == "Insufficient stock"
        assert resp.json["batch_id"] == batch.id
        assert resp.json["requested"] == 11
        assert resp.json["available"] == 10

        db_session.refresh(batch)
        assert batch.quantity == 10
        assert db_session.query(Sale).count() == 0

    def test_failing_second_line_rolls_back_first(
        self, client, db_session, cashier_headers, product, batch, new_product, new_batch
    ):
        other = new_product(name="Cetirizine 10mg", barcode="5000000000002")
        scarce = new_batch(other, quantity=1, price=500, batch_number="CTZ-1")
        movements_before = db_session.query(InventoryMovement).count()

        resp = _sell(client, cashier_headers, [
            {"batch_id": batch.id, "quantity": 4},
            {"batch_id": scarce.id, "quantity": 2},
        ])
        assert resp.status_code == 409
        assert resp.json["batch_id"] == scarce.id

        db_session.refresh(batch)
        db_session.refresh(scarce)
        assert batch.quantity == 10
        assert scarce.quantity == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(InventoryMovement).count() == movements_before
        assert inventory_service.verify_ledger() == []

    def test_failed_sale_does_not_consume_receipt_number(self, client, db_session, cashier_headers, batch):
        assert _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}]).status_code == 201
        assert _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 50}]).status_code == 409
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}])
        assert resp.json["sale"]["receipt_number"] == "RCPT-000002"

    def test_service_raises_named_error(self, db_session, cashier, batch):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.settle_sale(
                cashier_id=cashier.id,
                items=[{"batch_id": batch.id, "quantity": 99}],
                payment_method="card",
            )
        assert exc.value.batch_id == batch.id
        assert db_session.query(Sale).count() == 0


# =============================================================================
# REJECTED LINES
# =============================================================================


class TestRejectedLines:

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [{"quantity": 1}],
            [{"batch_id": 1, "quantity": 0}],
            [{"batch_id": 1, "quantity": -2}],
            [{"batch_id": 1, "quantity": "two"}],
        ],
    )
    def test_malformed_lines(self, client, db_session, cashier_headers, items):
        assert _sell(client, cashier_headers, items).status_code == 400

    def test_unknown_payment_method(self, client, db_session, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}], payment_method="barter")
        assert resp.status_code == 400

    def test_unknown_batch(self, client, db_session, cashier_headers):
        assert _sell(client, cashier_headers, [{"batch_id": 9999, "quantity": 1}]).status_code == 404

    def test_expired_batch(self, client, db_session, cashier_headers, product, new_batch):
        expired = new_batch(
            product, quantity=5, batch_number="OLD-1",
            expiry_date=inventory_service.business_today() - timedelta(days=1),
        )
        resp = _sell(client, cashier_headers, [{"batch_id": expired.id, "quantity": 1}])
        assert resp.status_code == 400
        db_session.refresh(expired)
        assert expired.quantity == 5

    def test_inactive_batch(self, client, db_session, cashier_headers, batch):
        batch.is_active = False
        db_session.commit()
        assert _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}]).status_code == 400

    def test_discount_larger_than_subtotal(self, db_session, cashier, batch):
        with pytest.raises(SaleError):
            sales_service.settle_sale(
                cashier_id=cashier.id,
                items=[{"batch_id": batch.id, "quantity": 1}],
                payment_method="cash",
                discount="10.01",
            )

    def test_amount_with_three_decimals(self, client, db_session, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}], discount="0.001")
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "item,discount",
        [
            ({"unit_price": "1e30"}, None),
            ({}, "1e30"),
            ({"discount": "1e30"}, None),
        ],
    )
    def test_oversized_amounts(self, client, db_session, admin_headers, batch, item, discount):
        line = {"batch_id": batch.id, "quantity": 1, **item}
        resp = _sell(client, admin_headers, [line], discount=discount)
        assert resp.status_code == 400
        assert "maximum" in resp.json["error"]
        assert db_session.query(Sale).count() == 0

    @pytest.mark.parametrize("quantity", [10**20, 1_000_001, 0, -1])
    def test_quantity_out_of_range(self, client, db_session, cashier_headers, batch, quantity):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": quantity}])
        assert resp.status_code == 400
        assert db_session.query(Sale).count() == 0


# =============================================================================
# PRICE OVERRIDE
# =============================================================================


class TestPriceOverride:

    def test_cashier_cannot_override_price(self, client, db_session, cashier, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1, "unit_price": "5.00"}])
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "OVERRIDE_PRICE"
        assert resp.json["batch_id"] == batch.id
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SecurityEvent).filter_by(
            user_id=cashier.id, event_type="PERMISSION_DENIED", action="OVERRIDE_PRICE"
        ).count() == 1

    def test_matching_explicit_price_is_allowed(self, client, db_session, cashier_headers, batch):
        resp = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1, "unit_price": "10.00"}])
        assert resp.status_code == 201

    def test_super_admin_may_override(self, client, db_session, admin_headers, batch):
        resp = _sell(client, admin_headers, [{"batch_id": batch.id, "quantity": 2, "unit_price": "8.50"}])
        assert resp.status_code == 201
        assert resp.json["sale"]["total"] == "17.00"

    def test_service_refuses_without_flag(self, db_session, cashier, batch):
        with pytest.raises(PriceOverrideError):
            sales_service.settle_sale(
                cashier_id=cashier.id,
                items=[{"batch_id": batch.id, "quantity": 1, "unit_price": "1.00"}],
                payment_method="cash",
            )


# =============================================================================
# VISIBILITY
# =============================================================================


class TestSaleVisibility:

    def test_cashier_sees_only_own_sales(
        self, client, db_session, cashier_headers, other_cashier_headers, batch
    ):
        mine = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}]).json["sale"]
        theirs = _sell(client, other_cashier_headers, [{"batch_id": batch.id, "quantity": 1}]).json["sale"]

        listed = client.get("/api/sales", headers=cashier_headers).json
        assert [s["id"] for s in listed["items"]] == [mine["id"]]
        assert listed["total"] == 1

        assert client.get(f"/api/sales/{mine['id']}", headers=cashier_headers).status_code == 200
        assert client.get(f"/api/sales/{theirs['id']}", headers=cashier_headers).status_code == 404
        resp = client.get(f"/api/sales/receipt/{theirs['receipt_number']}", headers=cashier_headers)
        assert resp.status_code == 404

    def test_manager_sees_all_sales(self, client, db_session, cashier_headers, other_cashier_headers,
                                    manager_headers, batch):
        _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}])
        _sell(client, other_cashier_headers, [{"batch_id": batch.id, "quantity": 1}])

        listed = client.get("/api/sales", headers=manager_headers).json
        assert listed["total"] == 2

    def test_lookup_by_receipt(self, client, db_session, cashier_headers, batch):
        sale = _sell(client, cashier_headers, [{"batch_id": batch.id, "quantity": 1}]).json["sale"]
        resp = client.get(f"/api/sales/receipt/{sale['receipt_number']}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["sale"]["id"] == sale["id"]
        assert len(resp.json["sale"]["items"]) == 1
