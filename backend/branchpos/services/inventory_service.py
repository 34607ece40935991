# Overview: Service-layer operations for inventory; stock reads and the restock transactions.

"""
Inventory invariants (authoritative)

- Exactly one Inventory row per (branch, product); quantity is never negative
  (CHECK constraint plus the checks below).
- Stock moves between branches only HQ -> branch (restock_branch). Supplier
  stock only ever enters through HQ (restock_hq).
- restock_branch is validate-then-apply inside one transaction: every line is
  checked against locked HQ rows before anything is written, so an
  insufficient line aborts the whole transfer with no partial writes.
- The deducting side is never upserted. Only the receiving side creates a
  missing row.
- Every restock appends one log row listing all moved items. Logs are never
  updated or deleted.

Services flush but do not commit; the route commits.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Branch, Product, Inventory, RestockLog, RestockLogItem, HqRestockLog, HqRestockLogItem
from ..time_utils import utcnow
from ..validation import LineItem, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry


class InsufficientStockError(Exception):
    """A requested quantity exceeds what the source inventory row holds."""

    def __init__(self, message: str, *, product_id: int, available: int, requested: int):
        super().__init__(message)
        self.product_id = product_id
        self.available = available
        self.requested = requested


def get_branch(branch_id: int, *, label: str = "Branch") -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFoundError(f"{label} not found")
    return branch


def get_hq_branch() -> Branch:
    """The distribution hub. Single-HQ is a convention; the oldest flagged branch wins."""
    hq = db.session.query(Branch).filter_by(is_hq=True).order_by(Branch.id.asc()).first()
    if not hq:
        raise NotFoundError("HQ branch not found")
    return hq


def load_products(product_ids) -> dict[int, Product]:
    """Fetch products by id; NotFoundError names the first missing id."""
    ids = list(product_ids)
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    for product_id in ids:
        if product_id not in products:
            raise NotFoundError(f"Product not found: {product_id}")
    return products


def get_inventory_row(branch_id: int, product_id: int, *, lock: bool = False) -> Inventory | None:
    query = db.session.query(Inventory).filter_by(branch_id=branch_id, product_id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _receiving_row(branch_id: int, product_id: int) -> Inventory:
    row = get_inventory_row(branch_id, product_id, lock=True)
    if row is None:
        row = Inventory(
            branch_id=branch_id,
            product_id=product_id,
            quantity=0,
            low_stock_threshold=current_app.config.get("LOW_STOCK_DEFAULT_THRESHOLD", 10),
        )
        db.session.add(row)
    return row


# =============================================================================
# RESTOCK
# =============================================================================

def restock_branch(
    target_branch_id: int,
    items: list[LineItem],
    performed_by_user_id: int | None,
    notes: str | None = None,
) -> RestockLog:
    """
    Move stock from HQ to a branch, atomically.

    Args:
        target_branch_id: Branch receiving the stock
        items: Parsed lines; quantities are already positive
        performed_by_user_id: Admin performing the transfer
        notes: Free text stored on the log

    Returns:
        RestockLog with one item per line

    Raises:
        ValidationError: no items, or target is HQ itself
        NotFoundError: target branch, HQ or a product missing
        InsufficientStockError: HQ holds less than requested for some product
    """
    if not items:
        raise ValidationError("No products provided to restock")

    def _op():
        target = get_branch(target_branch_id, label="Target branch")
        hq = get_hq_branch()
        if target.id == hq.id:
            raise ValidationError("Cannot restock HQ from itself; use the HQ supplier restock")

        products = load_products(line.product_id for line in items)

        # Check every line against locked HQ rows before writing anything
        hq_rows: dict[int, Inventory] = {}
        for line in sorted(items, key=lambda l: l.product_id):
            row = get_inventory_row(hq.id, line.product_id, lock=True)
            available = row.quantity if row else 0
            if available < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock in HQ for {products[line.product_id].name}. "
                    f"Available: {available}, requested: {line.quantity}",
                    product_id=line.product_id,
                    available=available,
                    requested=line.quantity,
                )
            hq_rows[line.product_id] = row

        now = utcnow()
        for line in items:
            hq_rows[line.product_id].quantity -= line.quantity

            target_row = _receiving_row(target.id, line.product_id)
            target_row.quantity += line.quantity
            target_row.last_restocked_at = now

        log = RestockLog(
            from_branch_id=hq.id,
            to_branch_id=target.id,
            performed_by_user_id=performed_by_user_id,
            notes=notes,
        )
        log.items = [RestockLogItem(product_id=line.product_id, quantity=line.quantity) for line in items]
        db.session.add(log)

        # Flush inside the retry scope so version conflicts surface here
        db.session.flush()
        return log

    return run_with_retry(_op, retry_on=(IntegrityError,))


def restock_hq(
    items: list[LineItem],
    performed_by_user_id: int | None,
    *,
    supplier_name: str | None = None,
    reference_no: str | None = None,
    notes: str | None = None,
    unit_costs: dict[int, int] | None = None,
) -> HqRestockLog:
    """
    Receive supplier stock into HQ.

    Inbound only: there is no source row to deduct, hence no sufficiency check.

    Raises:
        ValidationError: no items
        NotFoundError: HQ or a product missing
    """
    if not items:
        raise ValidationError("Products are required")
    unit_costs = unit_costs or {}

    def _op():
        hq = get_hq_branch()
        load_products(line.product_id for line in items)

        now = utcnow()
        for line in items:
            row = _receiving_row(hq.id, line.product_id)
            row.quantity += line.quantity
            row.last_restocked_at = now

        log = HqRestockLog(
            hq_branch_id=hq.id,
            performed_by_user_id=performed_by_user_id,
            supplier_name=supplier_name,
            reference_no=reference_no,
            notes=notes,
        )
        log.items = [
            HqRestockLogItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_cost_cents=unit_costs.get(line.product_id),
            )
            for line in items
        ]
        db.session.add(log)
        db.session.flush()
        return log

    return run_with_retry(_op, retry_on=(IntegrityError,))


# =============================================================================
# READ SIDE
# =============================================================================

def list_inventory(branch_id: int | None = None, low_stock: bool = False) -> list[Inventory]:
    query = (
        db.session.query(Inventory)
        .join(Branch, Inventory.branch_id == Branch.id)
        .join(Product, Inventory.product_id == Product.id)
    )
    if branch_id is not None:
        query = query.filter(Inventory.branch_id == branch_id)
    if low_stock:
        query = query.filter(Inventory.quantity < Inventory.low_stock_threshold)
    return query.order_by(Branch.name.asc(), Product.name.asc()).all()


def list_low_stock() -> list[dict]:
    rows = (
        db.session.query(Inventory)
        .filter(Inventory.quantity < Inventory.low_stock_threshold)
        .order_by(Inventory.quantity.asc(), Inventory.id.asc())
        .all()
    )
    return [
        {
            "branch_id": row.branch_id,
            "branch": row.branch.name,
            "product_id": row.product_id,
            "product": row.product.name,
            "current_stock": row.quantity,
            "threshold": row.low_stock_threshold,
            "deficit": row.low_stock_threshold - row.quantity,
        }
        for row in rows
    ]


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.name.asc()).all()


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc()).all()


def list_restock_logs(limit: int = 50) -> list[RestockLog]:
    return (
        db.session.query(RestockLog)
        .order_by(RestockLog.created_at.desc(), RestockLog.id.desc())
        .limit(limit)
        .all()
    )
