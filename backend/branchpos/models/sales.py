from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    A completed, paid sale.

    Created exactly once per payment attempt, together with its items and the
    inventory decrement, in a single transaction. checkout_request_id is
    unique so a duplicated confirmation cannot produce a second Sale.
    Immutable afterwards, except that mpesa_reference may be back-filled by a
    callback that arrives after a poll already confirmed the payment.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_date", "branch_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Gateway receipt number (e.g. "QGH7XYZ123"); NULL until the callback delivers it
    mpesa_reference = db.Column(db.String(64), nullable=True, unique=True)
    transaction_ref = db.Column(db.String(64), nullable=False, unique=True)
    checkout_request_id = db.Column(db.String(128), nullable=False, unique=True)

    customer_phone = db.Column(db.String(20), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="MPESA")

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    branch = db.relationship("Branch", backref=db.backref("sales", lazy=True))
    customer = db.relationship("User")
    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} ref={self.transaction_ref!r} total_cents={self.total_amount_cents}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "branch": self.branch.name if self.branch else None,
            "total_amount_cents": self.total_amount_cents,
            "mpesa_reference": self.mpesa_reference,
            "transaction_ref": self.transaction_ref,
            "checkout_request_id": self.checkout_request_id,
            "customer_phone": self.customer_phone,
            "customer_id": self.customer_id,
            "payment_method": self.payment_method,
            "transaction_date": to_utc_z(self.transaction_date),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item of a sale. price_at_sale_cents is a snapshot, independent of Product.price_cents."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class PaymentAttempt(db.Model):
    """
    One push-payment attempt for a priced cart.

    This row is the confirmation status the POS client polls. The gateway
    callback (or a reconciling status query) moves it out of PENDING; only the
    transition to CONFIRMED creates a Sale.

    STATUSES: INITIATED -> PENDING -> CONFIRMED | FAILED | TIMED_OUT
    """
    __tablename__ = "payment_attempts"
    __table_args__ = (
        db.Index("ix_payment_attempts_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    transaction_ref = db.Column(db.String(64), nullable=False, unique=True)
    # Set once the gateway accepts the push request
    checkout_request_id = db.Column(db.String(128), nullable=True, unique=True)
    merchant_request_id = db.Column(db.String(128), nullable=True)

    phone_number = db.Column(db.String(20), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="INITIATED", index=True)
    result_code = db.Column(db.String(32), nullable=True)
    result_desc = db.Column(db.String(255), nullable=True)
    mpesa_receipt_number = db.Column(db.String(64), nullable=True)
    amount_paid = db.Column(db.Integer, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    sale = db.relationship("Sale")
    lines = db.relationship("PaymentAttemptLine", backref="attempt", lazy=True, order_by="PaymentAttemptLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PaymentAttempt id={self.id} checkout={self.checkout_request_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "transaction_ref": self.transaction_ref,
            "checkout_request_id": self.checkout_request_id,
            "merchant_request_id": self.merchant_request_id,
            "phone_number": self.phone_number,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "result_code": self.result_code,
            "result_desc": self.result_desc,
            "mpesa_receipt_number": self.mpesa_receipt_number,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class PaymentAttemptLine(db.Model):
    """Cart snapshot priced when the payment was initiated."""
    __tablename__ = "payment_attempt_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(db.Integer, db.ForeignKey("payment_attempts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
