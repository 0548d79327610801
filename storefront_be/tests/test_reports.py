"""Tests for admin dashboard aggregates."""

from datetime import datetime

from conftest import ADDRESS, fill_cart
from storefront.services.order_lifecycle import PaymentResult
from storefront.services.reports import AdminReports, _months_back

PAID = PaymentResult(transaction_id="txn_1", status="success")


def test_months_back_crosses_year_boundary():
    assert _months_back(datetime(2026, 2, 15), 6) == datetime(2025, 9, 1)
    assert _months_back(datetime(2026, 2, 15), 1) == datetime(2026, 2, 1)


class TestAdminReports:
    def test_revenue_counts_paid_orders_only(self, service, db, customer_caller, filled_cart):
        service.create_order(customer_caller, "card", ADDRESS, payment_result=PAID)
        shirt, _ = filled_cart
        fill_cart(db, customer_caller.user_id, [(shirt, 1)])
        service.create_order(customer_caller, "cod", ADDRESS)

        assert AdminReports(db).revenue() == {"success": True, "totalOrders": 1, "totalRevenue": 250.0}

    def test_overview(self, service, db, customer_caller, admin, filled_cart):
        service.create_order(customer_caller, "card", ADDRESS, payment_result=PAID)

        stats = AdminReports(db).overview()["stats"]
        assert stats == {"totalUsers": 2, "totalProducts": 2, "totalOrders": 1, "totalRevenue": 250.0}

    def test_monthly_revenue_buckets(self, service, db, clock, customer_caller, filled_cart):
        service.create_order(customer_caller, "card", ADDRESS, payment_result=PAID)

        months = AdminReports(db).monthly_revenue(months=3, now=clock.now)
        assert [(m["year"], m["month"]) for m in months] == [(2026, 1), (2026, 2), (2026, 3)]
        assert months[-1] == {"year": 2026, "month": 3, "revenue": 250.0, "orders": 1}
        assert months[0]["revenue"] == 0.0

    def test_empty_store(self, db):
        assert AdminReports(db).revenue()["totalRevenue"] == 0.0
