"""
Pytest fixtures for branchpos backend tests.

Provides the app and test client, a clean database per test, catalog and
stock builders, users with bearer headers, and a scripted payment gateway.
"""

import pytest
from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import Branch, Product, Inventory, Sale, SaleItem, ROLE_ADMIN, ROLE_CUSTOMER
from branchpos.services.auth_service import create_user
from branchpos.services import session_service
from branchpos.services.mpesa_service import (
    PaymentGatewayError,
    PaymentStatus,
    PushPaymentResult,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    parse_callback,
)
from branchpos.time_utils import utcnow


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MPESA_MODE': 'mock',
        'MPESA_CALLBACK_TOKEN': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# PAYMENT GATEWAY
# =============================================================================

class FakeGateway:
    """
    Scripted stand-in for the M-Pesa adapter.

    Status queries pop from `script` first, then answer with `status`.
    """

    def __init__(self):
        self.pushes = []
        self.queries = []
        self.script = []
        self.status = PaymentStatus(STATUS_PENDING, None, "The transaction is being processed")
        self.initiate_error = None
        self.query_error = None
        self._counter = 0

    def succeed(self):
        self.status = PaymentStatus(STATUS_SUCCESS, "0", "The service request is processed successfully.")

    def fail(self, code="1032", description="Request cancelled by user"):
        self.status = PaymentStatus(STATUS_FAILED, code, description)

    def get_access_token(self):
        return "fake-access-token"

    def initiate_push_payment(self, phone, amount, reference, description):
        if self.initiate_error:
            raise PaymentGatewayError(self.initiate_error)
        self._counter += 1
        self.pushes.append({
            "phone": phone,
            "amount": amount,
            "reference": reference,
            "description": description,
        })
        return PushPaymentResult(
            checkout_id=f"ws_CO_TEST_{self._counter}",
            merchant_request_id=f"MR_TEST_{self._counter}",
            response_code="0",
            response_description="Success. Request accepted for processing",
        )

    def query_payment_status(self, checkout_id):
        self.queries.append(checkout_id)
        if self.query_error:
            raise PaymentGatewayError(self.query_error)
        if self.script:
            return self.script.pop(0)
        return self.status

    def validate_callback(self, payload):
        return parse_callback(payload)


@pytest.fixture(scope='function')
def gateway(app):
    """Replace the app's payment gateway for one test."""
    fake = FakeGateway()
    original = app.extensions["payment_gateway"]
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = original


def callback_payload(checkout_id, result_code=0, receipt="QGH7XYZ123", amount=160, phone=254712345678,
                     result_desc=None):
    """Daraja-shaped STK callback body."""
    body = {
        "MerchantRequestID": "MR_TEST",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc or (
            "The service request is processed successfully." if result_code == 0 else "Request cancelled by user"
        ),
    }
    if result_code == 0:
        body["CallbackMetadata"] = {"Item": [
            {"Name": "Amount", "Value": amount},
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "TransactionDate", "Value": 20261019120000},
            {"Name": "PhoneNumber", "Value": phone},
        ]}
    return {"Body": {"stkCallback": body}}


# =============================================================================
# CATALOG AND STOCK
# =============================================================================

@pytest.fixture(scope='function')
def hq(db_session):
    """Create the HQ branch."""
    branch = Branch(name="Nairobi HQ", location="Nairobi", is_hq=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch(db_session):
    """Create a regular branch."""
    branch = Branch(name="Kisumu Branch", location="Kisumu")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    """Create a second regular branch."""
    branch = Branch(name="Mombasa Branch", location="Mombasa")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def coke(db_session):
    product = Product(name="Coke", description="500ml bottle", price_cents=8000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def fanta(db_session):
    product = Product(name="Fanta", description="500ml bottle", price_cents=7500)
    db_session.add(product)
    db_session.commit()
    return product


def set_stock(branch, product, quantity, threshold=50):
    """Upsert an inventory row and commit."""
    row = db.session.query(Inventory).filter_by(branch_id=branch.id, product_id=product.id).first()
    if row is None:
        row = Inventory(branch_id=branch.id, product_id=product.id, quantity=quantity, low_stock_threshold=threshold)
        db.session.add(row)
    else:
        row.quantity = quantity
        row.low_stock_threshold = threshold
    db.session.commit()
    return row


def stock_of(branch, product):
    """Committed quantity, or None when no inventory row exists."""
    db.session.expire_all()
    row = db.session.query(Inventory).filter_by(branch_id=branch.id, product_id=product.id).first()
    return row.quantity if row else None


@pytest.fixture(scope='function')
def stocked(db_session, hq, branch, coke, fanta):
    """HQ: 500 Coke, 300 Fanta. Branch: 20 Coke, 10 Fanta."""
    set_stock(hq, coke, 500)
    set_stock(hq, fanta, 300)
    set_stock(branch, coke, 20)
    set_stock(branch, fanta, 10)


def make_sale(branch, lines, when=None, receipt=None, ref=None):
    """
    Insert a Sale directly (bypassing checkout) for read-side tests.

    lines: [(product, quantity), ...] priced at the product's current price.
    """
    count = db.session.query(Sale).count() + 1
    ref = ref or f"POSTEST{count}"
    sale = Sale(
        branch_id=branch.id,
        total_amount_cents=sum(p.price_cents * q for p, q in lines),
        mpesa_reference=receipt,
        transaction_ref=ref,
        checkout_request_id=f"ws_CO_SEED_{count}",
        customer_phone="254712345678",
        transaction_date=when or utcnow(),
    )
    sale.items = [
        SaleItem(product_id=p.id, quantity=q, price_at_sale_cents=p.price_cents, subtotal_cents=p.price_cents * q)
        for p, q in lines
    ]
    db.session.add(sale)
    db.session.commit()
    return sale


# =============================================================================
# USERS AND AUTH
# =============================================================================

def make_user(email, role=ROLE_CUSTOMER, password=TEST_PASSWORD, first_name=None):
    user = create_user(email, password, first_name=first_name, role=role)
    db.session.commit()
    return user


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    """Open a session for the user and return bearer headers."""
    _, token = session_service.create_session(user_id=user.id)
    db.session.commit()
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin@branchpos.test", role=ROLE_ADMIN, first_name="Ada")


@pytest.fixture(scope='function')
def customer_user(db_session):
    return make_user("customer@branchpos.test", role=ROLE_CUSTOMER, first_name="Cy")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    return headers_for(customer_user)
