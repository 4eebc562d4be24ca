"""
Shared pytest fixtures: a throwaway SQLite database per test, a session on
it, a FastAPI test client wired to the same database, and small factories
for users, recipients and donations.
"""
import os
import tempfile
from datetime import date, timedelta
from typing import Generator, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from db import get_session
from main import app
from models import Donation, RecipientProfile, User
from recipients import dump_requirements, RequirementEntry
from routers.auth import create_session_token, hash_password


@pytest.fixture(scope="function")
def engine():
    """Create a SQLite engine on a unique temp file for each test."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False,
    )
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make_user(
        role: str = "donor",
        name: Optional[str] = None,
        organization_name: Optional[str] = None,
        password: str = "secret123",
    ) -> User:
        counter["n"] += 1
        user = User(
            email=f"{role}{counter['n']}@medidonate.org",
            name=name or f"{role.title()} {counter['n']}",
            organization_name=organization_name,
            password_hash=hash_password(password),
            is_donor=role == "donor",
            is_recipient=role == "recipient",
            is_admin=role == "admin",
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_recipient(session, make_user):
    def _make_recipient(*requirements: str, description: Optional[str] = None) -> RecipientProfile:
        user = make_user("recipient")
        profile = RecipientProfile(
            user_id=user.id,
            organization_name=f"Org of {user.name}",
            description=description,
            requirements=dump_requirements(
                [RequirementEntry(id=f"req-{i}", text=text) for i, text in enumerate(requirements)]
            ),
        )
        session.add(profile)
        session.commit()
        session.refresh(profile)
        return profile

    return _make_recipient


@pytest.fixture
def make_donation(session, make_user):
    def _make_donation(
        item_name: str = "Paracetamol",
        description: Optional[str] = "pain relief tablets",
        status: str = "pending",
        donor: Optional[User] = None,
    ) -> Donation:
        donor = donor or make_user("donor")
        donation = Donation(
            donor_id=donor.id,
            item_name=item_name,
            quantity=10,
            expiry_date=date.today() + timedelta(days=90),
            description=description,
            status=status,
        )
        session.add(donation)
        session.commit()
        session.refresh(donation)
        return donation

    return _make_donation


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin")


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_session_token(user.id)}"}

    return _auth_headers
