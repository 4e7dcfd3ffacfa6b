"""Tests for order import and order analytics.

REFERENCES:
    - app/services/order_import.py
    - app/services/analytics_service.py
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from app.models import Order
from app.services.analytics_service import (
    OrderFilters,
    compute_analytics,
    filter_options,
    query_orders,
)
from app.services.order_import import (
    OrderImportError,
    build_order,
    import_orders,
    parse_amount,
    parse_order_date,
)

HEADER = "Order Number,Order Date,Order Total,Order Status,Payment Method,Customer State,Courier Company,Product Quantity\n"


def orders_csv(*lines: str) -> bytes:
    return (HEADER + "\n".join(lines) + "\n").encode()


class TestParsing:
    @pytest.mark.parametrize("value, expected", [
        ("15-01-2025", datetime(2025, 1, 15)),
        ("15-01-2025 13:45:10", datetime(2025, 1, 15, 13, 45, 10)),
        ("5-1-2025 9:05", datetime(2025, 1, 5, 9, 5)),
        ("2025-01-15", datetime(2025, 1, 15)),
        ("2025-01-15T08:30:00Z", datetime(2025, 1, 15, 8, 30)),
        (date(2025, 1, 15), datetime(2025, 1, 15)),
        ("N/A", None),
        ("", None),
        (None, None),
        ("31-02-2025", None),
        ("soon", None),
    ])
    def test_parse_order_date(self, value, expected):
        assert parse_order_date(value) == expected

    def test_parse_amount(self):
        assert parse_amount("1,299.50") == Decimal("1299.50")
        assert parse_amount(12) == Decimal("12")
        assert parse_amount("N/A") == Decimal("0")
        assert parse_amount(None) == Decimal("0")

    def test_defaults_for_sparse_row(self, test_user):
        order = build_order({"Order Number": "1001"}, test_user.id)

        assert order.channel == "Shopify"
        assert order.payment_method == "COD"
        assert order.order_status == "Pending"
        assert order.product_quantity == 1
        assert order.order_total == Decimal("0")
        assert order.order_delivered_date is None
        assert isinstance(order.order_date, datetime)

    def test_row_without_order_number_skipped(self, test_user):
        assert build_order({"Order Number": "  ", "Order Total": "10"}, test_user.id) is None


class TestImport:
    def test_import_inserts_valid_rows(self, test_db_session, test_user):
        content = orders_csv(
            "1001,15-01-2025 10:00:00,100,Delivered,COD,Goa,BlueDart,2",
            ",16-01-2025,50,Delivered,COD,Goa,BlueDart,1",
            "1002,16-01-2025,200,RTO,Prepaid,Kerala,Delhivery,",
        )

        count = import_orders(test_db_session, test_user.id, "orders.csv", content)

        assert count == 2
        orders = test_db_session.query(Order).order_by(Order.order_number).all()
        assert [(o.order_number, o.product_quantity, o.customer_state) for o in orders] == [
            ("1001", 2, "Goa"),
            ("1002", 1, "Kerala"),
        ]

    def test_empty_file_rejected(self, test_db_session, test_user):
        with pytest.raises(OrderImportError):
            import_orders(test_db_session, test_user.id, "orders.csv", b"")

    def test_no_valid_orders_rejected(self, test_db_session, test_user):
        with pytest.raises(OrderImportError):
            import_orders(test_db_session, test_user.id, "orders.csv", orders_csv(",15-01-2025,1,Delivered,COD,Goa,X,1"))


@pytest.fixture
def imported_orders(test_db_session, test_user):
    import_orders(test_db_session, test_user.id, "orders.csv", orders_csv(
        "1,01-03-2025 09:00:00,100,Delivered,COD,Goa,BlueDart,1",
        "2,01-03-2025 18:00:00,300,RTO,Prepaid,Goa,Delhivery,1",
        "3,02-03-2025,200,Delivered,Prepaid,Kerala,BlueDart,1",
        "4,03-03-2025,400,In Transit,COD,,,1",
        "5,31-03-2025 23:59:59,50,Delivered,COD,Goa,BlueDart,1",
        "6,01-04-2025,999,Delivered,COD,Goa,BlueDart,1",
    ))


class TestAnalytics:
    def test_date_bounds_are_inclusive_days(self, test_db_session, test_user, imported_orders):
        orders = query_orders(test_db_session, test_user.id, OrderFilters(
            start_date=date(2025, 3, 1), end_date=date(2025, 3, 31),
        ))
        assert [o.order_number for o in orders] == ["1", "2", "3", "4", "5"]

    def test_equality_filters(self, test_db_session, test_user, imported_orders):
        orders = query_orders(test_db_session, test_user.id, OrderFilters(
            payment_method="COD", customer_state="Goa", courier_company="BlueDart",
        ))
        assert [o.order_number for o in orders] == ["1", "5", "6"]

    def test_filter_options(self, test_db_session, test_user, imported_orders):
        assert filter_options(test_db_session, test_user.id) == {
            "states": ["Goa", "Kerala"],
            "couriers": ["BlueDart", "Delhivery"],
            "statuses": ["Delivered", "In Transit", "RTO"],
        }

    def test_metrics(self, test_db_session, test_user, imported_orders):
        orders = query_orders(test_db_session, test_user.id, OrderFilters(
            start_date=date(2025, 3, 1), end_date=date(2025, 3, 3),
        ))

        metrics = compute_analytics(orders)

        assert metrics["total_orders"] == 4
        assert metrics["total_revenue"] == 1000.0
        assert metrics["average_order_value"] == 250.0
        assert metrics["delivered_percentage"] == 50.0
        assert metrics["orders_over_time"] == [
            {"date": date(2025, 3, 1), "orders": 2, "revenue": 400.0},
            {"date": date(2025, 3, 2), "orders": 1, "revenue": 200.0},
            {"date": date(2025, 3, 3), "orders": 1, "revenue": 400.0},
        ]
        # Delivered + RTO attempted: 3, delivered 2
        assert metrics["delivery"]["total_attempted"] == 3
        assert metrics["delivery"]["delivered"] == 2
        assert metrics["delivery"]["delivery_percentage"] == pytest.approx(66.666, rel=1e-3)
        assert {s["name"]: s["value"] for s in metrics["status_breakdown"]} == {
            "Delivered": 2, "RTO": 1, "In Transit": 1,
        }
        assert metrics["top_states"][0] == {"name": "Goa", "value": 2}
        couriers = {c["courier"]: c for c in metrics["courier_performance"]}
        assert couriers["BlueDart"]["delivery_rate"] == 100.0
        assert couriers["Delhivery"]["delivery_rate"] == 0.0
        assert couriers["Unknown"]["total"] == 1

    def test_custom_delivery_statuses(self, test_db_session, test_user, imported_orders):
        orders = query_orders(test_db_session, test_user.id)
        metrics = compute_analytics(orders, ["Delivered"])
        assert metrics["delivery"]["delivery_percentage"] == 100.0

    def test_no_orders(self):
        metrics = compute_analytics([])
        assert metrics["total_orders"] == 0
        assert metrics["average_order_value"] == 0.0
        assert metrics["delivery"]["delivery_percentage"] == 0.0
