import os

# Settings are read at import time, so these must be set before carecircle is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carecircle.db.db import get_db
from carecircle.db.models import Base
from carecircle.security.security import create_token
from carecircle.services import family_links

OWNER_ID = "owner-1"
MEMBER_ID = "member-1"
MEMBER_EMAIL = "dana@example.org"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLAlchemy's documented pysqlite recipe so SAVEPOINTs nest inside a real transaction.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def invite_link(db_session):
    """Factory that invites a family member, optionally approving the link straight away."""

    def _invite(
        scopes=("POST_MEDIA",),
        *,
        owner_id=OWNER_ID,
        member_id=MEMBER_ID,
        full_name="Dana",
        email=MEMBER_EMAIL,
        approve=False,
    ):
        link = family_links.invite(
            db_session,
            owner_account_id=owner_id,
            full_name=full_name,
            relation="Granddaughter",
            phone="050-1234567",
            initial_scopes=list(scopes),
            email=email,
            member_account_id=member_id,
        )
        if approve:
            link = family_links.set_status(db_session, link_id=link.id, status="APPROVED")
        return link

    return _invite


@pytest.fixture
def client(session_factory):
    from carecircle.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(account_id: str, role: str | None = None, email: str | None = None) -> dict:
    return {"Authorization": f"Bearer {create_token(account_id, role=role, email=email)}"}


@pytest.fixture
def owner_headers():
    return auth_headers(OWNER_ID, "MAIN_USER")


@pytest.fixture
def member_headers():
    return auth_headers(MEMBER_ID, "FAMILY", MEMBER_EMAIL)
