# Overview: Service-layer operations for the POS checkout; pricing, push payment and confirmation.

"""
POS Checkout Service

STATE MACHINE (persisted on PaymentAttempt.status):
    INITIATED -> PENDING -> CONFIRMED | FAILED | TIMED_OUT

- INITIATED: cart priced and stored, push request not yet accepted
- PENDING: gateway accepted the push; waiting for the customer's PIN
- CONFIRMED: money received, Sale recorded, branch stock decremented
- FAILED: gateway reported failure, payment arrived after stock ran out, or
  the callback amount or phone did not match the attempt
- TIMED_OUT: we stopped waiting; distinct from FAILED because the money may
  still arrive, and a late successful callback still confirms the attempt

The gateway callback is the source of truth. confirm_payment() reconciles
through a status query for clients that poll before the callback lands.

TRANSACTIONS:
- initiate_payment commits the attempt before calling the gateway, so a
  callback can never reference an attempt that does not exist yet.
- record_successful_payment is the only writer of Sale rows. Stock check,
  decrement, Sale, SaleItems and the attempt transition commit together.
  Sale.checkout_request_id is unique, so a racing duplicate confirmation
  fails and resolves to the sale that won.

Functions in this module commit their own work.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Branch, Inventory, Product, PaymentAttempt, PaymentAttemptLine, Sale, SaleItem
from ..time_utils import utcnow, to_utc_z
from ..validation import LineItem, NotFoundError, ValidationError
from .concurrency import commit_session, lock_for_update, run_with_retry
from .inventory_service import InsufficientStockError, get_branch, get_inventory_row
from .mpesa_service import PaymentGatewayError, format_phone_number, get_payment_gateway


ATTEMPT_INITIATED = "INITIATED"
ATTEMPT_PENDING = "PENDING"
ATTEMPT_CONFIRMED = "CONFIRMED"
ATTEMPT_FAILED = "FAILED"
ATTEMPT_TIMED_OUT = "TIMED_OUT"

TERMINAL_STATUSES = (ATTEMPT_CONFIRMED, ATTEMPT_FAILED, ATTEMPT_TIMED_OUT)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


@dataclass
class PricedLine:
    product_id: int
    name: str
    quantity: int
    unit_price_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


@dataclass
class OrderPreview:
    branch: Branch
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return sum(line.subtotal_cents for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "branch": {"id": self.branch.id, "name": self.branch.name},
            "items": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
        }


def gateway_amount(total_cents: int) -> int:
    """Whole currency units for the gateway, rounded half up."""
    return (total_cents + 50) // 100


def generate_transaction_ref() -> str:
    return f"POS{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


# =============================================================================
# CATALOG
# =============================================================================

def list_pos_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.name.asc()).all()


def branch_products(branch_id: int) -> dict:
    """Products in stock at a branch. Raises NotFoundError for an unknown branch."""
    branch = get_branch(branch_id)
    rows = (
        db.session.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .filter(
            Inventory.branch_id == branch.id,
            Inventory.quantity > 0,
            Product.is_active.is_(True),
        )
        .order_by(Product.name.asc())
        .all()
    )
    return {
        "branch": {"id": branch.id, "name": branch.name, "location": branch.location},
        "products": [
            {
                "id": row.product.id,
                "name": row.product.name,
                "price_cents": row.product.price_cents,
                "description": row.product.description,
                "available_stock": row.quantity,
            }
            for row in rows
        ],
    }


# =============================================================================
# PRICING
# =============================================================================

def preview_order(branch_id: int, items: list[LineItem]) -> OrderPreview:
    """
    Price a cart against current branch stock. Read-only.

    Fails on the first bad line.

    Raises:
        ValidationError: empty cart
        NotFoundError: branch or product missing
        InsufficientStockError: branch holds less than a line asks for
    """
    if not items:
        raise ValidationError("Branch ID and items are required")

    branch = get_branch(branch_id)
    preview = OrderPreview(branch=branch)

    for line in items:
        product = db.session.get(Product, line.product_id)
        if not product or not product.is_active:
            raise NotFoundError(f"Product not found: {line.product_id}")

        row = get_inventory_row(branch.id, product.id)
        available = row.quantity if row else 0
        if available < line.quantity:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Available: {available}",
                product_id=product.id,
                available=available,
                requested=line.quantity,
            )

        preview.lines.append(PricedLine(
            product_id=product.id,
            name=product.name,
            quantity=line.quantity,
            unit_price_cents=product.price_cents,
        ))

    return preview


# =============================================================================
# PAYMENT
# =============================================================================

def initiate_payment(
    branch_id: int,
    phone_number,
    items: list[LineItem],
    total_amount_cents: int | None = None,
    customer_id: int | None = None,
) -> PaymentAttempt:
    """
    Price the cart, record a PaymentAttempt and send the push request.

    No Sale is created and no stock moves here.

    Raises:
        ValidationError: malformed phone, empty cart, or client total differs
        NotFoundError / InsufficientStockError: from preview_order
        PaymentGatewayError: gateway refused or unreachable (attempt is FAILED)
    """
    phone = format_phone_number(phone_number)
    preview = preview_order(branch_id, items)

    if total_amount_cents is not None and total_amount_cents != preview.total_cents:
        raise ValidationError("Cart total has changed. Please review the order and try again.")
    amount = gateway_amount(preview.total_cents)
    if amount < 1:
        raise ValidationError("Order total must be greater than zero")

    attempt = PaymentAttempt(
        branch_id=preview.branch.id,
        transaction_ref=generate_transaction_ref(),
        phone_number=phone,
        total_amount_cents=preview.total_cents,
        customer_id=customer_id,
        status=ATTEMPT_INITIATED,
    )
    attempt.lines = [
        PaymentAttemptLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            subtotal_cents=line.subtotal_cents,
        )
        for line in preview.lines
    ]
    db.session.add(attempt)
    commit_session()

    gateway = get_payment_gateway()
    try:
        result = gateway.initiate_push_payment(
            phone,
            amount,
            attempt.transaction_ref,
            f"Purchase at {preview.branch.name}",
        )
    except PaymentGatewayError as exc:
        current_app.logger.warning("Push payment for %s rejected: %s", attempt.transaction_ref, exc)
        attempt.status = ATTEMPT_FAILED
        attempt.result_desc = str(exc)[:255]
        attempt.resolved_at = utcnow()
        commit_session()
        raise

    attempt.checkout_request_id = result.checkout_id
    attempt.merchant_request_id = result.merchant_request_id
    attempt.status = ATTEMPT_PENDING
    commit_session()

    current_app.logger.info(
        "Push payment initiated ref=%s checkout=%s amount=%s",
        attempt.transaction_ref, attempt.checkout_request_id, amount,
    )
    return attempt


def get_attempt(checkout_request_id: str, *, lock: bool = False) -> PaymentAttempt:
    if not checkout_request_id:
        raise ValidationError("checkoutRequestId is required")
    query = db.session.query(PaymentAttempt).filter_by(checkout_request_id=checkout_request_id)
    if lock:
        query = lock_for_update(query)
    attempt = query.first()
    if not attempt:
        raise NotFoundError("Payment not found")
    return attempt


def get_payment_status(checkout_request_id: str) -> PaymentAttempt:
    """Status row only; never calls the gateway."""
    return get_attempt(checkout_request_id)


def _resolve_attempt(checkout_request_id: str, status: str, result_code=None, result_desc=None) -> PaymentAttempt:
    """
    Move an unconfirmed attempt to FAILED or TIMED_OUT and commit.

    CONFIRMED and FAILED are final. A TIMED_OUT attempt may still become FAILED.
    """
    def _op():
        attempt = get_attempt(checkout_request_id, lock=True)
        if attempt.status in (ATTEMPT_CONFIRMED, ATTEMPT_FAILED) or attempt.status == status:
            return attempt
        attempt.status = status
        attempt.result_code = str(result_code) if result_code is not None else attempt.result_code
        attempt.result_desc = (result_desc or "")[:255] or attempt.result_desc
        attempt.resolved_at = utcnow()
        db.session.flush()
        return attempt

    attempt = run_with_retry(_op)
    commit_session()
    return attempt


def mark_attempt_failed(checkout_request_id: str, result_code=None, result_desc=None) -> PaymentAttempt:
    return _resolve_attempt(checkout_request_id, ATTEMPT_FAILED, result_code, result_desc)


def mark_attempt_timed_out(checkout_request_id: str) -> PaymentAttempt:
    current_app.logger.warning("Gave up waiting for payment %s", checkout_request_id)
    return _resolve_attempt(
        checkout_request_id,
        ATTEMPT_TIMED_OUT,
        result_desc="Timed out waiting for payment confirmation",
    )


def record_successful_payment(
    checkout_request_id: str,
    receipt_number: str | None = None,
    amount: int | None = None,
) -> PaymentAttempt:
    """
    Turn a paid attempt into a Sale, atomically and at most once.

    - Already CONFIRMED: returned as is (a missing receipt number is back-filled).
    - FAILED: left alone and logged; the payment needs manual review.
    - Stock ran out since initiation: attempt becomes FAILED with the reason,
      logged for refund; no Sale is recorded.

    Raises:
        NotFoundError: no attempt for this checkout id
    """
    def _op():
        attempt = get_attempt(checkout_request_id, lock=True)

        if attempt.status == ATTEMPT_CONFIRMED:
            if receipt_number and not attempt.mpesa_receipt_number:
                attempt.mpesa_receipt_number = receipt_number
                if attempt.sale is not None and not attempt.sale.mpesa_reference:
                    attempt.sale.mpesa_reference = receipt_number
                db.session.flush()
            return attempt

        if attempt.status == ATTEMPT_FAILED:
            current_app.logger.warning(
                "Payment success reported for failed attempt checkout=%s receipt=%s; manual review required",
                checkout_request_id, receipt_number,
            )
            return attempt

        # Check every line against locked branch rows before writing
        rows: dict[int, Inventory] = {}
        for line in sorted(attempt.lines, key=lambda l: l.product_id):
            row = get_inventory_row(attempt.branch_id, line.product_id, lock=True)
            available = row.quantity if row else 0
            if available < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {line.product.name}. Available: {available}",
                    product_id=line.product_id,
                    available=available,
                    requested=line.quantity,
                )
            rows[line.product_id] = row

        for line in attempt.lines:
            rows[line.product_id].quantity -= line.quantity

        sale = Sale(
            branch_id=attempt.branch_id,
            total_amount_cents=sum(line.subtotal_cents for line in attempt.lines),
            mpesa_reference=receipt_number,
            transaction_ref=attempt.transaction_ref,
            checkout_request_id=attempt.checkout_request_id,
            customer_phone=attempt.phone_number,
            customer_id=attempt.customer_id,
            payment_method="MPESA",
        )
        sale.items = [
            SaleItem(
                product_id=line.product_id,
                quantity=line.quantity,
                price_at_sale_cents=line.unit_price_cents,
                subtotal_cents=line.subtotal_cents,
            )
            for line in attempt.lines
        ]
        db.session.add(sale)
        db.session.flush()

        attempt.status = ATTEMPT_CONFIRMED
        attempt.sale_id = sale.id
        attempt.result_code = "0"
        attempt.mpesa_receipt_number = receipt_number
        attempt.amount_paid = amount
        attempt.resolved_at = utcnow()
        db.session.flush()
        return attempt

    try:
        attempt = run_with_retry(_op)
        commit_session()
    except InsufficientStockError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Payment received for checkout=%s receipt=%s but stock ran out; refund required: %s",
            checkout_request_id, receipt_number, exc,
        )
        return mark_attempt_failed(checkout_request_id, result_desc=str(exc))
    except IntegrityError:
        # A concurrent confirmation created the sale first
        db.session.rollback()
        attempt = get_attempt(checkout_request_id)
        if attempt.status != ATTEMPT_CONFIRMED:
            raise
        return attempt

    if attempt.status == ATTEMPT_CONFIRMED:
        current_app.logger.info(
            "Payment confirmed checkout=%s sale=%s receipt=%s",
            checkout_request_id, attempt.sale_id, attempt.mpesa_receipt_number,
        )
    return attempt


def _callback_mismatch(attempt: PaymentAttempt, result) -> str | None:
    """Describe why a success callback does not match its attempt, or None."""
    expected = gateway_amount(attempt.total_amount_cents)
    if result.amount != expected:
        return f"Amount mismatch: expected {expected}, received {result.amount}"
    # Daraja may mask the payer's number; only a full number is compared
    if result.phone and result.phone.isdigit() and result.phone != attempt.phone_number:
        return f"Phone mismatch: expected {attempt.phone_number}, received {result.phone}"
    return None


def handle_callback(payload) -> dict:
    """
    Apply a gateway callback. Returns the acknowledgement body.

    Raises:
        ValidationError: payload is not a valid callback envelope
    """
    result = get_payment_gateway().validate_callback(payload)
    if not result.valid:
        raise ValidationError(result.error or "Invalid callback")

    attempt = db.session.query(PaymentAttempt).filter_by(checkout_request_id=result.checkout_id).first()
    if attempt is None:
        current_app.logger.warning("Callback for unknown checkout %s ignored", result.checkout_id)
        return dict(CALLBACK_ACK)

    if result.success:
        current_app.logger.info(
            "Payment callback success checkout=%s receipt=%s amount=%s",
            result.checkout_id, result.receipt_number, result.amount,
        )
        mismatch = _callback_mismatch(attempt, result)
        if mismatch:
            current_app.logger.warning(
                "Payment callback for checkout=%s receipt=%s rejected: %s",
                result.checkout_id, result.receipt_number, mismatch,
            )
            mark_attempt_failed(result.checkout_id, result_desc=f"{mismatch}; manual review required")
            return dict(CALLBACK_ACK)
        record_successful_payment(result.checkout_id, result.receipt_number, result.amount)
    else:
        current_app.logger.info(
            "Payment callback failure checkout=%s code=%s desc=%s",
            result.checkout_id, result.result_code, result.result_desc,
        )
        mark_attempt_failed(result.checkout_id, result.result_code, result.result_desc)

    return dict(CALLBACK_ACK)


def _waited_too_long(attempt: PaymentAttempt) -> bool:
    timeout = timedelta(seconds=current_app.config.get("PAYMENT_CONFIRM_TIMEOUT_SECONDS", 60))
    created_at = attempt.created_at
    if created_at.tzinfo is not None:
        created_at = created_at.replace(tzinfo=None) - (created_at.utcoffset() or timedelta(0))
    return utcnow() - created_at > timeout


def confirm_payment(checkout_request_id: str) -> PaymentAttempt:
    """
    Reconcile a pending attempt with the gateway.

    Terminal attempts are returned without a gateway call. An unreachable
    gateway counts as "not known yet", never as failure.
    """
    attempt = get_attempt(checkout_request_id)
    if attempt.status in TERMINAL_STATUSES:
        return attempt

    try:
        status = get_payment_gateway().query_payment_status(checkout_request_id)
    except PaymentGatewayError as exc:
        current_app.logger.warning("Status query for %s failed: %s", checkout_request_id, exc)
        status = None

    if status is not None and status.success:
        return record_successful_payment(checkout_request_id)
    if status is not None and not status.pending:
        return mark_attempt_failed(checkout_request_id, status.result_code, status.description)

    if _waited_too_long(attempt):
        return mark_attempt_timed_out(checkout_request_id)
    return attempt


def poll_payment_confirmation(
    checkout_request_id: str,
    attempts: int | None = None,
    interval: float | None = None,
    sleep=time.sleep,
) -> PaymentAttempt:
    """
    Bounded poll over confirm_payment.

    Returns the first terminal attempt; if all attempts pass while still
    pending, the attempt is marked TIMED_OUT.
    """
    if attempts is None:
        attempts = current_app.config.get("POS_POLL_ATTEMPTS", 60)
    if interval is None:
        interval = current_app.config.get("POS_POLL_INTERVAL_SECONDS", 1.0)

    for index in range(attempts):
        attempt = confirm_payment(checkout_request_id)
        if attempt.status in TERMINAL_STATUSES:
            return attempt
        if index < attempts - 1:
            sleep(interval)

    return mark_attempt_timed_out(checkout_request_id)


def get_receipt(reference: str) -> dict:
    """Receipt by M-Pesa receipt number or POS transaction reference."""
    sale = (
        db.session.query(Sale)
        .filter(db.or_(Sale.mpesa_reference == reference, Sale.transaction_ref == reference))
        .first()
    )
    if not sale:
        raise NotFoundError("Receipt not found")

    return {
        "sale_id": sale.id,
        "transaction_ref": sale.transaction_ref,
        "mpesa_reference": sale.mpesa_reference,
        "branch": sale.branch.name,
        "location": sale.branch.location,
        "date": to_utc_z(sale.transaction_date),
        "items": [
            {
                "name": item.product.name,
                "quantity": item.quantity,
                "price_cents": item.price_at_sale_cents,
                "subtotal_cents": item.subtotal_cents,
            }
            for item in sale.items
        ],
        "total_cents": sale.total_amount_cents,
        "payment_method": sale.payment_method,
    }
