# Overview: Sales statistics per currency over a date range.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Item, Sale, SaleStatus
from ..money import ZERO, to_number


def get_stats_by_date_range(user_id: int, start: date, end: date) -> list[dict]:
    """
    Aggregate ACTIVE sales between start and end (inclusive) per currency.

    Cost is quantity_sold x the item's current purchase_price; lines whose
    item is gone cost 0.
    An inverted range matches no sales; the route rejects it before calling.
    """
    cost_expr = Sale.quantity_sold * func.coalesce(Item.purchase_price, 0)

    rows = (
        db.session.query(
            Sale.currency.label("currency"),
            func.count(Sale.id).label("total_sales"),
            func.coalesce(func.sum(Sale.quantity_sold), 0).label("total_items_sold"),
            func.coalesce(func.sum(Sale.total_amount), 0).label("total_revenue"),
            func.coalesce(func.sum(cost_expr), 0).label("total_cost"),
        )
        .outerjoin(Item, Item.id == Sale.item_id)
        .filter(
            Sale.user_id == user_id,
            Sale.status == SaleStatus.ACTIVE,
            Sale.sale_date >= start,
            Sale.sale_date <= end,
        )
        .group_by(Sale.currency)
        .order_by(Sale.currency.asc())
        .all()
    )

    return [
        {
            "currency": row.currency,
            "total_sales": int(row.total_sales or 0),
            "total_items_sold": int(row.total_items_sold or 0),
            "total_revenue": Decimal(str(row.total_revenue or 0)),
            "total_cost": Decimal(str(row.total_cost or 0)),
        }
        for row in rows
    ]


def build_statistics(rows: list[dict]) -> dict:
    """Fold per-currency rows into the totals object returned by /sales/range."""
    total_sales = 0
    total_items = 0
    total_revenue = ZERO
    total_cost = ZERO
    by_currency = []

    for row in rows:
        revenue = row["total_revenue"]
        cost = row["total_cost"]
        total_sales += row["total_sales"]
        total_items += row["total_items_sold"]
        total_revenue += revenue
        total_cost += cost
        by_currency.append({
            "currency": row["currency"],
            "sales": row["total_sales"],
            "itemsSold": row["total_items_sold"],
            "revenue": to_number(revenue),
            "cost": to_number(cost),
            "profit": to_number(revenue - cost),
        })

    return {
        "totalSales": total_sales,
        "totalItemsSold": total_items,
        "totalRevenue": to_number(total_revenue),
        "totalCost": to_number(total_cost),
        "totalProfit": to_number(total_revenue - total_cost),
        "byCurrency": by_currency,
    }
