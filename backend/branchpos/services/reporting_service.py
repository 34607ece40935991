# Overview: Read-side sales reports; filtered summaries, pagination and analytics.

"""
Sales reporting.

All filters are bound parameters on ORM queries. Date bounds are inclusive
and expected as UTC-naive datetimes (routes parse ISO-8601 input).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import desc, func

from ..extensions import db
from ..models import Branch, Product, Sale, SaleItem
from ..time_utils import days_ago, to_utc_z
from ..validation import ValidationError

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

MAX_PAGE_SIZE = 200


def _sale_filters(start: datetime | None, end: datetime | None, branch_id: int | None) -> list:
    conditions = []
    if start is not None:
        conditions.append(Sale.transaction_date >= start)
    if end is not None:
        conditions.append(Sale.transaction_date <= end)
    if branch_id is not None:
        conditions.append(Sale.branch_id == branch_id)
    return conditions


def sales_reports(
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: int | None = None,
    product_id: int | None = None,
) -> dict:
    conditions = _sale_filters(start, end, branch_id)

    total_revenue, total_sales = (
        db.session.query(func.coalesce(func.sum(Sale.total_amount_cents), 0), func.count(Sale.id))
        .filter(*conditions)
        .one()
    )

    product_query = (
        db.session.query(
            Product.id,
            Product.name,
            func.sum(SaleItem.quantity).label("quantity"),
            func.sum(SaleItem.subtotal_cents).label("revenue"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(*conditions)
    )
    if product_id is not None:
        product_query = product_query.filter(Product.id == product_id)
    by_product = [
        {
            "product_id": pid,
            "product_name": name,
            "quantity_sold": int(quantity or 0),
            "revenue_cents": int(revenue or 0),
        }
        for pid, name, quantity, revenue in product_query
        .group_by(Product.id, Product.name)
        .order_by(desc("revenue"), Product.name.asc())
        .all()
    ]

    by_branch = (
        db.session.query(
            Branch.id,
            Branch.name,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
        )
        .join(Sale, Sale.branch_id == Branch.id)
        .filter(*conditions)
        .group_by(Branch.id, Branch.name)
        .order_by(Branch.name.asc())
        .all()
    )

    return {
        "summary": {
            "total_revenue_cents": int(total_revenue or 0),
            "total_sales": int(total_sales or 0),
        },
        "sales_by_product": by_product,
        "sales_by_branch": [
            {"branch_id": bid, "branch_name": name, "total_sales": int(count), "total_revenue_cents": int(rev or 0)}
            for bid, name, count, rev in by_branch
        ],
        "top_products": [
            {k: row[k] for k in ("product_name", "quantity_sold", "revenue_cents")}
            for row in by_product[:5]
        ],
    }


def detailed_sales(
    page: int = 1,
    limit: int = 50,
    branch_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    query = db.session.query(Sale).filter(*_sale_filters(start, end, branch_id))
    total_count = query.count()
    sales = (
        query.order_by(Sale.transaction_date.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "sales": [
            {
                "id": sale.id,
                "branch": sale.branch.name,
                "total_amount_cents": sale.total_amount_cents,
                "mpesa_reference": sale.mpesa_reference,
                "transaction_ref": sale.transaction_ref,
                "transaction_date": to_utc_z(sale.transaction_date),
                "items": [
                    {
                        "product": item.product.name,
                        "quantity": item.quantity,
                        "price_at_sale_cents": item.price_at_sale_cents,
                        "subtotal_cents": item.subtotal_cents,
                    }
                    for item in sale.items
                ],
            }
            for sale in sales
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total_count,
            "total_pages": (total_count + limit - 1) // limit,
        },
    }


def sales_analytics() -> dict:
    """Average transaction value, and the last 30 days grouped by day of week (Sunday first)."""
    average = db.session.query(func.avg(Sale.total_amount_cents)).scalar()

    # Weekday extraction differs per backend; group in Python instead
    buckets: dict[int, dict] = {}
    rows = (
        db.session.query(Sale.transaction_date, Sale.total_amount_cents)
        .filter(Sale.transaction_date >= days_ago(30))
        .all()
    )
    for transaction_date, total in rows:
        index = (transaction_date.weekday() + 1) % 7
        bucket = buckets.setdefault(index, {"sales_count": 0, "revenue_cents": 0})
        bucket["sales_count"] += 1
        bucket["revenue_cents"] += total

    return {
        "average_transaction_value_cents": int(round(float(average))) if average is not None else 0,
        "sales_by_day_of_week": [
            {"day": DAY_NAMES[index], **buckets[index]}
            for index in sorted(buckets)
        ],
    }
