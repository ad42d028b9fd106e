"""
Test configuration and shared fixtures for RxPortal tests.

This file contains:
- Centralized test configuration
- Shared fixtures used across multiple test files (users, catalog, auth headers)
- Common test utilities
"""

from decimal import Decimal

import pytest

from rxportal import create_app
from rxportal.models import db, User, Category, Product, ProductSize
from rxportal.utils.auth_utils import hash_password, generate_jwt_token
from rxportal.utils.payment_config import clear_payment_config_cache


# Centralized test configuration
TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SECRET_KEY': 'test-secret-key',
    'JWT_SECRET_KEY': 'test-jwt-secret-key',
    'BCRYPT_ROUNDS': 4,
    'MAIL_SERVER': 'localhost',
    'MAIL_PORT': 587,
    'MAIL_USE_TLS': False,
    'MAIL_USE_SSL': False,
    'MAIL_SUPPRESS_SEND': True,
    'MAIL_DEFAULT_SENDER': 'test@example.com',
    'FRONTEND_URL': 'http://localhost:3000',
    'COMPANY_NAME': '9RX LLC',
    'LAUNCH_BATCH_SIZE': 10,
    'LAUNCH_BATCH_DELAY': 0,
    'AUTHORIZE_NET_API_LOGIN_ID': 'test-login',
    'AUTHORIZE_NET_TRANSACTION_KEY': 'test-key',
    'AUTHORIZE_NET_TEST_MODE': True,
    'ACH_PAYMENT_PROCESSOR': 'authorize_net',
    'PAYMENT_HTTP_TIMEOUT': 5,
}

TEST_PASSWORD = 'TestPass123!'
VISA_CARD = {
    'cardNumber': '4111 1111 1111 1111',
    'expirationDate': '12/40',
    'cvv': '123',
    'cardholderName': 'Jane Pharmacist',
}
BILLING = {
    'firstName': 'Jane',
    'lastName': 'Pharmacist',
    'address': '1 Main St',
    'city': 'Springfield',
    'state': 'IL',
    'zip': '62701',
}
ACH_ACCOUNT = {
    'accountHolderName': 'Main Street Pharmacy',
    'routingNumber': '021000021',
    'accountNumber': '123456789',
    'confirmAccountNumber': '123456789',
    'accountType': 'checking',
}


@pytest.fixture
def app(tmp_path):
    """Create and configure a new app instance for each test."""
    app = create_app({**TEST_CONFIG, 'STATEMENT_OUTPUT_DIR': str(tmp_path / 'statements')})
    clear_payment_config_cache()
    yield app
    clear_payment_config_cache()


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture
def app_context(app):
    """Create an application context for database operations."""
    with app.app_context():
        yield


@pytest.fixture
def db_session(app_context):
    """Create a database session and clean up after tests."""
    db.create_all()
    yield db.session
    db.session.remove()
    db.drop_all()


def _make_user(session, email, role, **fields):
    user = User(email=email, password_hash=hash_password(TEST_PASSWORD), role=role, **fields)
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def admin_user(db_session):
    """Create an admin account."""
    return _make_user(db_session, 'admin@example.com', 'admin', first_name='Ada', last_name='Admin')


@pytest.fixture
def pharmacy_user(db_session):
    """Create a pharmacy customer with a credit line and tax rate."""
    return _make_user(
        db_session, 'pharmacy@example.com', 'pharmacy',
        first_name='Jane', last_name='Pharmacist', company_name='Main Street Pharmacy',
        credit_limit=Decimal('1000.00'), credit_used=Decimal('0.00'),
        tax_percentage=Decimal('5.00'), payment_terms='net_30',
        billing_address={'street': '1 Main St', 'city': 'Springfield', 'state': 'IL', 'zip_code': '62701'},
    )


@pytest.fixture
def group_user(db_session):
    """Create a group account."""
    return _make_user(db_session, 'group@example.com', 'group', company_name='Pharmacy Group')


@pytest.fixture
def auth_headers(app):
    """Return a helper building Bearer headers for a user."""
    def build(user):
        with app.app_context():
            return {'Authorization': f"Bearer {generate_jwt_token(user)}"}
    return build


@pytest.fixture
def catalog(db_session):
    """One category with a two-size product and a single-size product."""
    category = Category(name='Vials', description='Glass vials')
    db_session.add(category)
    db_session.flush()

    vial = Product(name='Amber Vial', sku='VIAL-AMB', description='Amber prescription vial',
                   category_id=category.id)
    vial.sizes = [
        ProductSize(size_value='20', size_unit='dram', sku='VIAL-AMB-20', price=Decimal('10.00'),
                    stock=100, shipping_cost=Decimal('5.00')),
        ProductSize(size_value='40', size_unit='dram', sku='VIAL-AMB-40', price=Decimal('15.50'),
                    stock=50, shipping_cost=Decimal('8.00')),
    ]
    bag = Product(name='Paper Bag', sku='BAG-01', description='Pharmacy paper bag')
    bag.sizes = [ProductSize(size_value='Small', sku='BAG-01-S', price=Decimal('2.25'), stock=500,
                             shipping_cost=Decimal('3.00'))]
    db_session.add_all([vial, bag])
    db_session.commit()
    return {'category': category, 'vial': vial, 'bag': bag}
