"""
Pytest fixtures for RepairDesk backend tests.

Provides test database setup, two stores in one organization plus a
standalone store, staff users, customers, and a test client.
"""

import bcrypt
import pytest
from cryptography.fernet import Fernet

from repairdesk import create_app
from repairdesk.extensions import db
from repairdesk.models import Customer, Organization, Store, User
from repairdesk.models.auth import ORG_ROLE_ADMIN, ROLE_ADMIN, ROLE_TECHNICIAN
from repairdesk.services import ticket_service
from repairdesk.services.session_service import create_session
from repairdesk.services.tenant_service import Principal


TEST_PASSWORD = "Password123!"

# Low-cost hash so fixtures stay fast; verify_password reads the cost from the hash
TEST_PASSWORD_HASH = bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CREDENTIALS_ENCRYPTION_KEY': Fernet.generate_key().decode("ascii"),
        'FRONTEND_URL': 'https://track.example.test',
        'TICKET_STRICT_TRANSITIONS': False,
        'WEBHOOK_CANDIDATE_TIMEOUT_SECONDS': 2.0,
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
        app.config['TICKET_STRICT_TRANSITIONS'] = False


@pytest.fixture(scope='function')
def org(db_session):
    """Organization grouping store_a and store_b."""
    org = Organization(name="Fix-It Group", code="FIXIT", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    org = Organization(name="Other Repairs Inc", code="OTHER", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store_a(db_session, org):
    store = Store(org_id=org.id, name="Downtown", phone="555-0100", email="downtown@fixit.test")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, org):
    """Sister store of store_a (same organization)."""
    store = Store(org_id=org.id, name="Uptown", default_warranty_days=90, default_warranty_terms="Parts and labor")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_c(db_session, other_org):
    """Store of a different organization."""
    store = Store(org_id=other_org.id, name="Elsewhere")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def standalone_store(db_session):
    """Store without an organization."""
    store = Store(org_id=None, name="Solo Shop")
    db_session.add(store)
    db_session.commit()
    return store


def make_user(db_session, store, username, role=ROLE_TECHNICIAN, org_role=None, name=None, is_active=True):
    user = User(
        store_id=store.id,
        username=username,
        name=name or username.title(),
        email=f"{username}@example.test",
        password_hash=TEST_PASSWORD_HASH,
        role=role,
        org_role=org_role,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_a(db_session, store_a):
    """Store admin and organization admin in store_a."""
    return make_user(db_session, store_a, "admin_a", role=ROLE_ADMIN, org_role=ORG_ROLE_ADMIN)


@pytest.fixture(scope='function')
def tech_a(db_session, store_a):
    return make_user(db_session, store_a, "tech_a", role=ROLE_TECHNICIAN)


@pytest.fixture(scope='function')
def admin_b(db_session, store_b):
    return make_user(db_session, store_b, "admin_b", role=ROLE_ADMIN, org_role=ORG_ROLE_ADMIN)


@pytest.fixture(scope='function')
def admin_c(db_session, store_c):
    return make_user(db_session, store_c, "admin_c", role=ROLE_ADMIN, org_role=ORG_ROLE_ADMIN)


@pytest.fixture(scope='function')
def customer_a(db_session, store_a):
    customer = Customer(store_id=store_a.id, name="Alice Jones", email="alice@example.test", phone="555-0111")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, store_b):
    customer = Customer(store_id=store_b.id, name="Bob Smith", email="bob@example.test")
    db_session.add(customer)
    db_session.commit()
    return customer


def principal_for(user) -> Principal:
    """Principal as require_auth would build it."""
    store = db.session.get(Store, user.store_id)
    return Principal(
        user_id=user.id,
        store_id=user.store_id,
        role=user.role,
        org_role=user.org_role,
        org_id=store.org_id if store else None,
    )


def open_ticket(store, customer, created_by=None, **fields):
    data = {
        "customer_id": customer.id,
        "issue_description": "Cracked screen",
        "device_type": "phone",
        "device_brand": "Apple",
        "device_model": "iPhone 13",
    }
    data.update(fields)
    return ticket_service.create_ticket(store.id, created_by.id if created_by else None, data)


@pytest.fixture(scope='function')
def ticket_a(db_session, store_a, customer_a, admin_a):
    return open_ticket(store_a, customer_a, created_by=admin_a)


@pytest.fixture(scope='function')
def ticket_b(db_session, store_b, customer_b, admin_b):
    return open_ticket(store_b, customer_b, created_by=admin_b)


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def token_for(user) -> str:
    """Session token without going through the login route."""
    _, token = create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
