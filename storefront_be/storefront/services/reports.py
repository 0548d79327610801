from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.models.product import Product
from storefront.models.user import User
from storefront.services.order_repository import OrderRepository
from storefront.utils.clock import utcnow


def _months_back(now: datetime, months: int) -> datetime:
    """First day of the month ``months - 1`` months before ``now``'s month."""
    index = now.year * 12 + (now.month - 1) - (months - 1)
    return datetime(index // 12, index % 12 + 1, 1)


class AdminReports:
    """Read-only aggregates for the admin dashboard. Only paid orders count as revenue."""

    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)

    def revenue(self) -> Dict[str, Any]:
        count, total = self.orders.paid_totals()
        return {"success": True, "totalOrders": count, "totalRevenue": float(total.quantize(Decimal("0.01")))}

    def overview(self) -> Dict[str, Any]:
        _, revenue = self.orders.paid_totals()
        return {
            "success": True,
            "stats": {
                "totalUsers": self.db.query(User).count(),
                "totalProducts": self.db.query(Product).count(),
                "totalOrders": self.orders.count(),
                "totalRevenue": float(revenue.quantize(Decimal("0.01"))),
            },
        }

    def monthly_revenue(self, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or utcnow()
        start = _months_back(now, months)
        buckets: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
        index = start.year * 12 + start.month - 1
        for _ in range(months):
            year, month = index // 12, index % 12 + 1
            buckets[(year, month)] = {"year": year, "month": month, "revenue": Decimal("0"), "orders": 0}
            index += 1
        for order in self.orders.paid_since(start):
            bucket = buckets.get((order.created_at.year, order.created_at.month))
            if bucket is None:
                continue
            bucket["revenue"] += Decimal(str(order.total_price or 0))
            bucket["orders"] += 1
        return [dict(b, revenue=float(b["revenue"].quantize(Decimal("0.01")))) for b in buckets.values()]
