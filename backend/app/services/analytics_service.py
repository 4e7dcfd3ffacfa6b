"""Order analytics over imported order lines.

WHAT:
    Filtered order queries, distinct filter values, and the dashboard metrics
    (totals, per-day series, delivery rates, status/state/courier breakdowns).

WHY:
    Order volumes per user are small (one logistics export at a time), so the
    metrics are computed in Python over the filtered rows rather than as one
    SQL query per chart.
"""

from __future__ import annotations

from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Order

DELIVERED_STATUS = "Delivered"
DEFAULT_DELIVERY_STATUSES = ("Delivered", "RTO")
TOP_STATES_LIMIT = 10
UNKNOWN_LABEL = "Unknown"


@dataclass
class OrderFilters:
    """Optional order filters; None means "all"."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_method: Optional[str] = None
    order_status: Optional[str] = None
    customer_state: Optional[str] = None
    courier_company: Optional[str] = None


def query_orders(db: Session, user_id: UUID, filters: Optional[OrderFilters] = None) -> List[Order]:
    """Owner's orders matching `filters`, oldest first.

    Date bounds are inclusive whole days on order_date.
    """
    filters = filters or OrderFilters()
    query = db.query(Order).filter(Order.user_id == user_id)

    if filters.start_date:
        query = query.filter(Order.order_date >= datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        query = query.filter(Order.order_date < datetime.combine(filters.end_date + timedelta(days=1), time.min))
    if filters.payment_method:
        query = query.filter(Order.payment_method == filters.payment_method)
    if filters.order_status:
        query = query.filter(Order.order_status == filters.order_status)
    if filters.customer_state:
        query = query.filter(Order.customer_state == filters.customer_state)
    if filters.courier_company:
        query = query.filter(Order.courier_company == filters.courier_company)

    return query.order_by(Order.order_date.asc()).all()


def filter_options(db: Session, user_id: UUID) -> Dict[str, List[str]]:
    """Distinct, sorted, non-empty states, couriers and statuses."""
    def distinct(column) -> List[str]:
        rows = db.query(column).filter(Order.user_id == user_id, column.isnot(None)).distinct().all()
        return sorted(value for (value,) in rows if value)

    return {
        "states": distinct(Order.customer_state),
        "couriers": distinct(Order.courier_company),
        "statuses": distinct(Order.order_status),
    }


def _percentage(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def compute_analytics(
    orders: Sequence[Order],
    delivery_statuses: Sequence[str] = DEFAULT_DELIVERY_STATUSES,
) -> Dict[str, Any]:
    """Dashboard metrics for an already filtered set of orders.

    Args:
        orders: Orders, ideally sorted by order_date so the daily series is
            in date order
        delivery_statuses: Statuses that count as a delivery attempt for the
            delivery percentage

    Returns:
        Dict matching `schemas.OrderAnalytics`
    """
    total_orders = len(orders)
    total_revenue = sum((Decimal(o.order_total or 0) for o in orders), Decimal("0"))
    delivered = sum(1 for o in orders if o.order_status == DELIVERED_STATUS)

    daily: "OrderedDict[date, Dict[str, Any]]" = OrderedDict()
    for order in orders:
        day = order.order_date.date()
        bucket = daily.setdefault(day, {"date": day, "orders": 0, "revenue": Decimal("0")})
        bucket["orders"] += 1
        bucket["revenue"] += Decimal(order.order_total or 0)

    statuses = set(delivery_statuses)
    attempted = [o for o in orders if o.order_status in statuses]
    attempted_delivered = sum(1 for o in attempted if o.order_status == DELIVERED_STATUS)

    status_counts = Counter(o.order_status or UNKNOWN_LABEL for o in orders)
    state_counts = Counter(o.customer_state or UNKNOWN_LABEL for o in orders)

    couriers: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    for order in orders:
        bucket = couriers.setdefault(order.courier_company or UNKNOWN_LABEL, {"total": 0, "delivered": 0})
        bucket["total"] += 1
        if order.order_status == DELIVERED_STATUS:
            bucket["delivered"] += 1

    return {
        "total_orders": total_orders,
        "total_revenue": float(total_revenue),
        "average_order_value": float(total_revenue / total_orders) if total_orders else 0.0,
        "delivered_percentage": _percentage(delivered, total_orders),
        "orders_over_time": [
            {"date": b["date"], "orders": b["orders"], "revenue": float(b["revenue"])}
            for b in daily.values()
        ],
        "delivery": {
            "statuses": list(delivery_statuses),
            "total_attempted": len(attempted),
            "delivered": attempted_delivered,
            "delivery_percentage": _percentage(attempted_delivered, len(attempted)),
        },
        "status_breakdown": [{"name": name, "value": value} for name, value in status_counts.items()],
        "top_states": [{"name": name, "value": value} for name, value in state_counts.most_common(TOP_STATES_LIMIT)],
        "courier_performance": [
            {
                "courier": courier,
                "total": bucket["total"],
                "delivered": bucket["delivered"],
                "delivery_rate": _percentage(bucket["delivered"], bucket["total"]),
            }
            for courier, bucket in couriers.items()
        ],
    }
