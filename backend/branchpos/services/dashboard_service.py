# Overview: Read-side aggregation for the admin dashboard.

from __future__ import annotations

from sqlalchemy import desc, func

from ..extensions import db
from ..models import Branch, Product, Sale, SaleItem
from ..time_utils import days_ago, to_utc_z
from .inventory_service import list_low_stock


def _day_key(value) -> str:
    # SQLite's date() returns text, other backends return a date
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def dashboard_metrics() -> dict:
    total_revenue = db.session.query(func.coalesce(func.sum(Sale.total_amount_cents), 0)).scalar()
    total_sales = db.session.query(func.count(Sale.id)).scalar() or 0

    revenue = func.sum(SaleItem.subtotal_cents).label("revenue")
    by_product = (
        db.session.query(Product.name, revenue, func.sum(SaleItem.quantity).label("units"))
        .join(SaleItem, SaleItem.product_id == Product.id)
        .group_by(Product.id, Product.name)
        .order_by(desc("revenue"), Product.name.asc())
        .all()
    )

    by_branch = (
        db.session.query(
            Branch.name,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
        )
        .join(Sale, Sale.branch_id == Branch.id)
        .group_by(Branch.id, Branch.name)
        .order_by(Branch.name.asc())
        .all()
    )

    return {
        "total_revenue_cents": int(total_revenue or 0),
        "total_sales": int(total_sales),
        "revenue_by_product": [
            {"product_name": name, "revenue_cents": int(rev or 0), "units_sold": int(units or 0)}
            for name, rev, units in by_product
        ],
        "sales_by_branch": [
            {"branch_name": name, "sales_count": int(count), "revenue_cents": int(rev or 0)}
            for name, count, rev in by_branch
        ],
        "low_stock_alerts": list_low_stock(),
    }


def sales_timeline(days: int = 30) -> list[dict]:
    """Daily sales count and revenue since `days` ago, oldest first."""
    day = func.date(Sale.transaction_date)
    rows = (
        db.session.query(day, func.count(Sale.id), func.sum(Sale.total_amount_cents))
        .filter(Sale.transaction_date >= days_ago(days))
        .group_by(day)
        .order_by(day.asc())
        .all()
    )
    return [
        {"date": _day_key(value), "sales_count": int(count), "revenue_cents": int(rev or 0)}
        for value, count, rev in rows
    ]


def recent_transactions(limit: int = 10) -> list[dict]:
    sales = (
        db.session.query(Sale)
        .order_by(Sale.transaction_date.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": sale.id,
            "date": to_utc_z(sale.transaction_date),
            "branch": sale.branch.name,
            "customer_phone": sale.customer_phone,
            "amount_cents": sale.total_amount_cents,
            "mpesa_reference": sale.mpesa_reference,
            "transaction_ref": sale.transaction_ref,
            "items": [
                {"product": item.product.name, "quantity": item.quantity, "subtotal_cents": item.subtotal_cents}
                for item in sale.items
            ],
        }
        for sale in sales
    ]
