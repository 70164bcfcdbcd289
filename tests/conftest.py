# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import timedelta
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from haven_messaging.core.security import create_access_token
from haven_messaging.db.session import Base, enable_sqlite_savepoints
from haven_messaging.db.session import get_db as app_get_session
from haven_messaging.db.time import utcnow
from haven_messaging.main import app as fastapi_app
from haven_messaging.models import User
from haven_messaging.services.conversation_service import ConversationService

TEST_DB_URL = "sqlite://"

_EMAIL_COUNTER = count(1)


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory persisting users with or without an active package."""

    def _make_user(
        name: str = "User",
        *,
        is_admin: bool = False,
        active_package: bool = True,
    ) -> User:
        expires = utcnow() + timedelta(days=30) if active_package else utcnow() - timedelta(days=1)
        user = User(
            name=name,
            email=f"user{next(_EMAIL_COUNTER)}@example.test",
            is_admin=is_admin,
            package_expires_at=None if is_admin else expires,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def admin(make_user: Callable[..., User]) -> User:
    """The single admin account."""
    return make_user("Admin", is_admin=True)


@pytest.fixture()
def member(make_user: Callable[..., User]) -> User:
    """A regular user holding an active package."""
    return make_user("Member")


@pytest.fixture()
def lapsed_member(make_user: Callable[..., User]) -> User:
    """A regular user whose package has expired."""
    return make_user("Lapsed", active_package=False)


@pytest.fixture()
def service(db_session: Session) -> ConversationService:
    return ConversationService(db_session)


def auth_headers(user: User) -> dict[str, str]:
    """Return authorization headers for ``user``."""
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
