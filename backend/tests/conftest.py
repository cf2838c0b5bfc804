"""
Pytest fixtures for TradeFlow backend tests.

Provides test database setup, a business with a preparer and customer,
and a test client.
"""

from decimal import Decimal

import pytest

from tradeflow import create_app
from tradeflow.extensions import db
from tradeflow.models import Business, Customer, Preparer
from tradeflow.money import Money
from tradeflow.services.snapshot_service import CustomerForm, ExistingCustomer, NewCustomer
from tradeflow.services.totals_service import LineItem


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEQUENCE_RETRY_BACKOFF': 0,
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
def business(db_session):
    """Business with full branding profile."""
    business = Business(
        name="Acme Heating Ltd",
        email="office@acme-heating.test",
        phone="0161 496 0000",
        address="1 Boiler Row, Manchester, M1 1AA",
        logo_url="https://cdn.acme-heating.test/logo.png",
        invoice_terms="Payment due within 14 days.",
        quote_terms="Quote valid for 30 days.",
        payment_info="Sort code 00-00-00, account 12345678",
        is_active=True,
    )
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def other_business(db_session):
    business = Business(name="Beta Plumbing", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def preparer(db_session, business):
    """Gas Safe registered engineer."""
    preparer = Preparer(
        business_id=business.id,
        display_name="Sam Engineer",
        email="sam@acme-heating.test",
        gas_safe_number="123456",
        gas_licence_number="7654321",
    )
    db_session.add(preparer)
    db_session.commit()
    return preparer


@pytest.fixture(scope='function')
def customer(db_session, business):
    customer = Customer(
        business_id=business.id,
        name="Jane Customer",
        address_line_1="22 Acacia Avenue",
        city="Leeds",
        postal_code="LS1 4AB",
        address="22 Acacia Avenue, Leeds, LS1 4AB",
        phone="07700 900000",
        email="jane@example.test",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


# =============================================================================
# Helpers
# =============================================================================

def make_items():
    """Two taxed lines and one zero-rated line."""
    return [
        LineItem("Boiler service", Decimal("2"), Money(5000), Decimal("20")),
        LineItem("Call-out", Decimal("1"), Money(1000), Decimal("0")),
        LineItem("Washers", Decimal("5"), Money(200), Decimal("20")),
    ]


def new_customer(**overrides):
    values = {
        "name": "J. Doe",
        "address_line_1": "5 High Street",
        "city": "York",
        "postal_code": "yo1 7hh",
        "email": "j.doe@example.test",
    }
    values.update(overrides)
    return NewCustomer(form=CustomerForm(**values))


def existing_customer(customer):
    return ExistingCustomer(customer_id=customer.id)


def certificate_content(**overrides):
    content = {
        "landlord": {"name": "J. Doe", "address": "5 High Street, York", "postcode": "YO1 7HH"},
        "tenant": {"name": "T. Tenant"},
        "property_address": "Flat 2, 9 Station Road, York, YO1 6AA",
        "inspection_date": "2026-03-01",
        "appliances": [
            {"location": "Kitchen", "make": "Worcester", "model": "Greenstar 30i", "type": "Combi boiler"},
        ],
        "final_checks": {"gas_tightness": "pass"},
    }
    content.update(overrides)
    return content
