"""
Dashboard tests.

Verifies:
- Today's sales total is the exact decimal sum of today's sales
- Low-stock, pending purchase order and expiring batch counts
- The rollup fails as a whole (503) rather than returning partial figures
- Daily sales report is zero-filled per business day
"""

from datetime import timedelta

from pharmapos.services import dashboard_service, purchase_order_service, sales_service
from pharmapos.services.dashboard_service import DashboardError
from pharmapos.services.inventory_service import business_today


class TestDashboardSummary:

    def test_today_sales_total_is_exact(self, client, db_session, cashier, cashier_headers, product, new_batch):
        for price in (1000, 2550, 725):
            b = new_batch(product, quantity=1, price=price, batch_number=f"P-{price}")
            sales_service.settle_sale(
                cashier_id=cashier.id,
                items=[{"batch_id": b.id, "quantity": 1}],
                payment_method="cash",
            )

        resp = client.get("/api/dashboard", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["today_sales_total"] == "42.75"
        assert resp.json["today_sales_count"] == 3
        assert resp.json["date"] == business_today().isoformat()

    def test_other_days_not_counted(self, db_session, cashier, batch):
        sales_service.settle_sale(
            cashier_id=cashier.id,
            items=[{"batch_id": batch.id, "quantity": 1}],
            payment_method="cash",
        )
        summary = dashboard_service.dashboard_summary(today=business_today() + timedelta(days=1))
        assert summary["today_sales_total"] == "0.00"
        assert summary["today_sales_count"] == 0

    def test_empty_store(self, db_session):
        summary = dashboard_service.dashboard_summary()
        assert summary["today_sales_total"] == "0.00"
        assert summary["low_stock_count"] == 0
        assert summary["pending_purchase_orders"] == 0
        assert summary["expiring_batches"] == 0

    def test_low_stock_count(self, db_session, new_product, new_batch):
        # Default threshold (10) applies when min_stock is 0
        at_threshold = new_product(name="A", barcode="1")
        new_batch(at_threshold, quantity=10, batch_number="A-1")
        plenty = new_product(name="B", barcode="2")
        new_batch(plenty, quantity=11, batch_number="B-1")
        # Own threshold
        custom = new_product(name="C", barcode="3", min_stock=50)
        new_batch(custom, quantity=40, batch_number="C-1")
        # No batches at all counts as zero on hand
        new_product(name="D", barcode="4")

        summary = dashboard_service.dashboard_summary()
        assert summary["low_stock_count"] == 3

    def test_pending_purchase_orders(self, db_session, stock_manager, supplier, product):
        items = [{"product_id": product.id, "quantity": 1, "unit_cost": "1.00"}]
        pending = purchase_order_service.create_order(
            supplier_id=supplier.id, items=items, created_by_user_id=stock_manager.id
        )
        purchase_order_service.create_order(
            supplier_id=supplier.id, items=items, created_by_user_id=stock_manager.id
        )
        received = purchase_order_service.create_order(
            supplier_id=supplier.id, items=items, created_by_user_id=stock_manager.id
        )
        purchase_order_service.receive_order(order_id=received.id, user_id=stock_manager.id)
        assert pending.status == "Pending"

        assert dashboard_service.dashboard_summary()["pending_purchase_orders"] == 2

    def test_expiring_batches(self, app, db_session, product, new_batch):
        today = business_today()
        window = app.config["EXPIRY_WARNING_DAYS"]
        new_batch(product, quantity=5, batch_number="SOON", expiry_date=today + timedelta(days=5))
        new_batch(product, quantity=5, batch_number="EDGE", expiry_date=today + timedelta(days=window))
        new_batch(product, quantity=5, batch_number="LATER", expiry_date=today + timedelta(days=window + 1))
        new_batch(product, quantity=5, batch_number="GONE", expiry_date=today - timedelta(days=1))
        new_batch(product, quantity=0, batch_number="EMPTY", expiry_date=today + timedelta(days=3))

        assert dashboard_service.dashboard_summary()["expiring_batches"] == 2

    def test_failure_returns_503(self, client, db_session, monkeypatch, cashier_headers):
        def broken():
            raise DashboardError("Dashboard data is temporarily unavailable")

        monkeypatch.setattr(dashboard_service, "dashboard_summary", broken)
        resp = client.get("/api/dashboard", headers=cashier_headers)
        assert resp.status_code == 503
        assert "today_sales_total" not in resp.json


class TestDailySalesReport:

    def test_zero_filled_days(self, db_session, cashier, batch):
        sales_service.settle_sale(
            cashier_id=cashier.id,
            items=[{"batch_id": batch.id, "quantity": 2}],
            payment_method="card",
        )
        today = business_today()
        days = dashboard_service.daily_sales_report(today - timedelta(days=2), today)

        assert [d["date"] for d in days] == [
            (today - timedelta(days=2)).isoformat(),
            (today - timedelta(days=1)).isoformat(),
            today.isoformat(),
        ]
        assert days[0] == {"date": days[0]["date"], "total": "0.00", "count": 0}
        assert days[2]["total"] == "20.00"
        assert days[2]["count"] == 1

    def test_reversed_range_rejected(self, client, db_session, manager_headers):
        resp = client.get(
            "/api/dashboard/daily-sales?start_date=2026-02-10&end_date=2026-02-01",
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_missing_range_rejected(self, client, db_session, manager_headers):
        assert client.get("/api/dashboard/daily-sales", headers=manager_headers).status_code == 400

