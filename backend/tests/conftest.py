import os
from collections.abc import Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tradehub.core.permissions import Caller
from tradehub.core.security import issue_session
from tradehub.core.utils import utc_now_naive
from tradehub.db import models  # noqa: F401
from tradehub.db.base import Base
from tradehub.db.models.user import User
from tradehub.db.session import get_db
from tradehub.main import app


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def _get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(
    db: Session,
    *,
    username: str,
    role: str = "user",
    is_active: bool = True,
    password_hash: str = "x",
) -> User:
    now = utc_now_naive()
    user = User(
        username=username,
        email=f"{username}@test.local",
        password_hash=password_hash,
        role=role,
        credibility_score=0,
        is_active=is_active,
        verification_requested=False,
        middleman_requested=False,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def caller_for(user: User) -> Caller:
    return Caller(user_id=user.id, username=user.username, role=user.role)


def auth_header(db: Session, user: User) -> dict[str, str]:
    token = issue_session(db, user)
    db.commit()
    return {"Authorization": f"Bearer {token}"}


def error_code(response) -> str:
    payload = response.json()
    assert payload["ok"] is False
    assert "request_id" in payload
    return payload["error"]["code"]
