"""
Pytest fixtures for the delivery note backend tests.

Provides an in-memory database, a temporary artifact directory, users with
bearer sessions, and a client/project pair to hang delivery notes on.
"""

import pytest
from albaranes import create_app
from albaranes.extensions import db
from albaranes.models import Client, Project, UserOwner, CompanyOwner
from albaranes.services import auth_service, session_service


# 1x1 transparent PNG
SIGNATURE_PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    storage_dir = tmp_path_factory.mktemp("storage")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORAGE_DIR': str(storage_dir),
        'STORAGE_BASE_URL': 'http://testserver/files',
        'STORAGE_PREFIX': 'albaranes',
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
def user(db_session):
    return auth_service.create_user(name="Ana Owner", email="ana@example.com", password="Password123")


@pytest.fixture(scope='function')
def other_user(db_session):
    return auth_service.create_user(name="Olga Outsider", email="olga@example.com", password="Password123")


@pytest.fixture(scope='function')
def company(db_session, user):
    return auth_service.create_company(user, name="Obras Ana SL", cif="B11111111")


@pytest.fixture(scope='function')
def customer(db_session, user):
    """Business client owned by `user`."""
    record = Client(
        name="Cliente Uno",
        cif="A22222222",
        email="compras@cliente.example",
        street="Calle Mayor 1",
        city="Madrid",
        postal_code="28001",
        country="ES",
    )
    record.owner = UserOwner(user.id)
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def project(db_session, user, customer):
    record = Project(name="Reforma oficina", client_id=customer.id)
    record.owner = UserOwner(user.id)
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def company_project(db_session, user, company, customer):
    record = Project(name="Obra empresa", client_id=customer.id)
    record.owner = CompanyOwner(company.id)
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def auth_headers_for(db_session):
    """Helper to open a session and build Authorization headers."""
    def _headers(user) -> dict:
        _, token = session_service.create_session(user.id)
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture(scope='function')
def auth_headers(user, auth_headers_for):
    return auth_headers_for(user)


@pytest.fixture(scope='function')
def consulting_item():
    return {"description": "Consulting", "quantity": 5, "unit": "hour", "unit_price": 50}


@pytest.fixture(scope='function')
def signature_image():
    return f"data:image/png;base64,{SIGNATURE_PNG_B64}"
