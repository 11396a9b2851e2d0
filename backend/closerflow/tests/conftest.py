import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from closerflow.core.database import get_db, init_db
from closerflow.core.security import hash_password
from closerflow.main import create_app
from closerflow.models.organization import Organization
from closerflow.models.store import Store
from closerflow.models.user import User

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def app(db_session):
    application = create_app()

    def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def organization(db_session):
    org = Organization(name="Joias Centro", code="JC")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture()
def other_organization(db_session):
    org = Organization(name="Outra Rede", code="OR")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture()
def stores(db_session, organization):
    items = [
        Store(name="Loja Centro", code="JC001", organization_id=organization.id),
        Store(name="Loja Norte", code="JN002", organization_id=organization.id),
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


@pytest.fixture()
def foreign_store(db_session, other_organization):
    store = Store(name="Loja Fora", code="OR001", organization_id=other_organization.id)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture()
def make_user(db_session, organization, password_hash):
    def _make(role, email=None, organization_id="default", store_id=None):
        user = User(
            name=f"{role.title()} Teste",
            email=email or f"{role}@test.com",
            hashed_password=password_hash,
            role=role,
            organization_id=organization.id if organization_id == "default" else organization_id,
            store_id=store_id,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _login


@pytest.fixture()
def employee(make_user):
    return make_user("funcionaria")


@pytest.fixture()
def manager(make_user):
    return make_user("gerente")


@pytest.fixture()
def admin(make_user):
    return make_user("administrador")


@pytest.fixture()
def super_admin(make_user):
    return make_user("super_admin", organization_id=None)


@pytest.fixture()
def employee_headers(employee, login):
    return login(employee.email)


@pytest.fixture()
def manager_headers(manager, login):
    return login(manager.email)


@pytest.fixture()
def admin_headers(admin, login):
    return login(admin.email)


@pytest.fixture()
def super_headers(super_admin, login):
    return login(super_admin.email)
