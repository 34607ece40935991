"""
Concurrent restock test.

Two admins move stock out of the same HQ row at the same time. Only one
transfer fits; the other must fail cleanly instead of driving HQ negative.

Runs against a file-backed SQLite database so each thread gets its own
connection.
"""

import threading

import pytest

from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import Branch, Product, Inventory, RestockLog
from branchpos.services import inventory_service
from branchpos.services.concurrency import commit_session
from branchpos.services.inventory_service import InsufficientStockError
from branchpos.validation import LineItem


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 15}},
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_parallel_restocks_never_oversell_hq(file_app):
    with file_app.app_context():
        hq = Branch(name="Nairobi HQ", is_hq=True)
        kisumu = Branch(name="Kisumu Branch")
        mombasa = Branch(name="Mombasa Branch")
        coke = Product(name="Coke", price_cents=8000)
        db.session.add_all([hq, kisumu, mombasa, coke])
        db.session.flush()
        db.session.add(Inventory(branch_id=hq.id, product_id=coke.id, quantity=100, low_stock_threshold=10))
        db.session.commit()
        hq_id, targets, coke_id = hq.id, [kisumu.id, mombasa.id], coke.id

    barrier = threading.Barrier(len(targets))
    outcomes = []
    lock = threading.Lock()

    def worker(target_id):
        with file_app.app_context():
            barrier.wait()
            try:
                inventory_service.restock_branch(target_id, [LineItem(coke_id, 70)], performed_by_user_id=None)
                commit_session()
                result = "ok"
            except InsufficientStockError:
                db.session.rollback()
                result = "insufficient"
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(target_id,)) for target_id in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["insufficient", "ok"]

    with file_app.app_context():
        quantities = {
            row.branch_id: row.quantity
            for row in db.session.query(Inventory).filter_by(product_id=coke_id).all()
        }
        assert quantities[hq_id] == 30
        assert all(quantity >= 0 for quantity in quantities.values())
        assert sum(quantities.values()) == 100
        assert db.session.query(RestockLog).count() == 1
