"""
Pytest fixtures for tillkeeper backend tests.

Provides test database setup, tenant/location/operator fixtures, a small
catalog with stock, and the test client.
"""

import pytest
from tillkeeper import create_app
from tillkeeper.actor import actor_for_operator
from tillkeeper.extensions import db
from tillkeeper.models import (
    Organization, Location, Operator, Product, Promotion, Customer,
    MODE_INVENTORY_COUNT,
)
from tillkeeper.services import stock_ledger


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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


@pytest.fixture(scope='function')
def org(db_session):
    org = Organization(name="Doces da Vila", code="VILA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    """A second tenant; nothing in it may be visible to org's operators."""
    org = Organization(name="Outra Loja", code="OUTRA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def location(db_session, org):
    location = Location(org_id=org.id, name="Loja Centro", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def kiosk(db_session, org):
    """Second location in the same org, counting stock instead of ringing sales."""
    location = Location(
        org_id=org.id,
        name="Quiosque Shopping",
        default_operating_mode=MODE_INVENTORY_COUNT,
        is_active=True,
    )
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def foreign_location(db_session, other_org):
    location = Location(org_id=other_org.id, name="Foreign Shop", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


def _make_operator(db_session, org, location, username, role):
    operator = Operator(
        org_id=org.id,
        location_id=location.id if location else None,
        username=username,
        role=role,
        is_active=True,
    )
    db_session.add(operator)
    db_session.commit()
    return operator


@pytest.fixture(scope='function')
def operator(db_session, org, location):
    return _make_operator(db_session, org, location, "caixa", "operator")


@pytest.fixture(scope='function')
def kiosk_operator(db_session, org, kiosk):
    return _make_operator(db_session, org, kiosk, "quiosque", "operator")


@pytest.fixture(scope='function')
def manager(db_session, org, kiosk):
    return _make_operator(db_session, org, kiosk, "gerente", "manager")


@pytest.fixture(scope='function')
def admin(db_session, org, location):
    return _make_operator(db_session, org, location, "admin", "admin")


@pytest.fixture(scope='function')
def foreign_operator(db_session, other_org, foreign_location):
    return _make_operator(db_session, other_org, foreign_location, "foreign", "admin")


@pytest.fixture(scope='function')
def actor(operator):
    return actor_for_operator(operator)


@pytest.fixture(scope='function')
def kiosk_actor(kiosk_operator):
    return actor_for_operator(kiosk_operator)


@pytest.fixture(scope='function')
def manager_actor(manager):
    return actor_for_operator(manager)


@pytest.fixture(scope='function')
def admin_actor(admin):
    return actor_for_operator(admin)


@pytest.fixture(scope='function')
def foreign_actor(foreign_operator):
    return actor_for_operator(foreign_operator)


@pytest.fixture(scope='function')
def product_a(db_session, org):
    """Brigadeiro, 5.00."""
    product = Product(org_id=org.id, sku="BRIG-01", name="Brigadeiro", price_cents=500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org):
    """Bolo de pote, 15.00."""
    product = Product(org_id=org.id, sku="BOLO-01", name="Bolo de pote", price_cents=1500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def stock(db_session):
    """Factory: put qty units of a product on a location's shelf."""
    def _stock(location, product, qty):
        stock_ledger.receive(location.id, product.id, qty)
        db_session.commit()
        return stock_ledger.get_quantity_on_hand(location.id, product.id)
    return _stock


@pytest.fixture(scope='function')
def stocked(stock, location, kiosk, product_a, product_b):
    """Both products stocked at both locations."""
    stock(location, product_a, 100)
    stock(location, product_b, 20)
    stock(kiosk, product_a, 100)
    stock(kiosk, product_b, 20)


@pytest.fixture(scope='function')
def combo_promo(db_session, org, product_a):
    """3 brigadeiros for 12.00 (regular 15.00)."""
    promo = Promotion(
        org_id=org.id,
        product_id=product_a.id,
        name="3 por 12",
        trigger_quantity=3,
        combo_price_cents=1200,
        is_active=True,
    )
    db_session.add(promo)
    db_session.commit()
    return promo


@pytest.fixture(scope='function')
def customer(db_session, org):
    customer = Customer(org_id=org.id, name="Maria", phone="11999990000")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def headers():
    """Helper to create identity headers for an operator."""
    def _headers(operator) -> dict:
        return {'X-Operator-Id': str(operator.id)}
    return _headers
