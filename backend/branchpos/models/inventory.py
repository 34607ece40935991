from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z


class Inventory(db.Model):
    """
    Stock on hand for one product at one branch.

    Exactly one row per (branch, product). Rows are created by seeding or by
    the first restock into a branch, mutated by restocks (increment) and
    confirmed sales (decrement), and never deleted.

    version_id is the optimistic lock: two sessions that both read a row and
    both write it cannot both succeed. The loser gets StaleDataError and is
    retried against the committed quantity.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_inventory_branch_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("inventory", lazy=True))
    product = db.relationship("Product", backref=db.backref("inventory", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity < self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<Inventory branch_id={self.branch_id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "branch": self.branch.name if self.branch else None,
            "is_hq": self.branch.is_hq if self.branch else None,
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "price_cents": self.product.price_cents if self.product else None,
            "quantity": self.quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
        }


class RestockLog(db.Model):
    """Append-only record of an HQ -> branch stock transfer."""
    __tablename__ = "restock_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    from_branch = db.relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = db.relationship("Branch", foreign_keys=[to_branch_id])
    performed_by = db.relationship("User")
    items = db.relationship("RestockLogItem", backref="restock_log", lazy=True, order_by="RestockLogItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_branch_id": self.from_branch_id,
            "from_branch": self.from_branch.name if self.from_branch else None,
            "to_branch_id": self.to_branch_id,
            "to_branch": self.to_branch.name if self.to_branch else None,
            "performed_by_user_id": self.performed_by_user_id,
            "notes": self.notes,
            "performed_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class RestockLogItem(db.Model):
    __tablename__ = "restock_log_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    restock_log_id = db.Column(db.Integer, db.ForeignKey("restock_logs.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "quantity": self.quantity,
        }


class HqRestockLog(db.Model):
    """Append-only record of supplier stock received into HQ."""
    __tablename__ = "hq_restock_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    hq_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    reference_no = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    hq_branch = db.relationship("Branch")
    items = db.relationship("HqRestockLogItem", backref="hq_restock_log", lazy=True, order_by="HqRestockLogItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hq_branch_id": self.hq_branch_id,
            "hq_branch": self.hq_branch.name if self.hq_branch else None,
            "performed_by_user_id": self.performed_by_user_id,
            "supplier_name": self.supplier_name,
            "reference_no": self.reference_no,
            "notes": self.notes,
            "performed_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class HqRestockLogItem(db.Model):
    __tablename__ = "hq_restock_log_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    hq_restock_log_id = db.Column(db.Integer, db.ForeignKey("hq_restock_logs.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }
