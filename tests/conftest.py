"""Shared pytest fixtures for the role and permission tests."""

from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import database.models  # noqa: F401  registers the tables on the metadata
from api.dependencies import get_statistics_service
from database.connection import build_engine, get_session
from database.models import Person
from main import app
from services.roles import RoleAssignmentStore, RoleStatisticsService

START = datetime(2026, 1, 15, 9, 0, 0)


class FakeClock:
    """Deterministic clock; every reading advances by `step`."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now

    @property
    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def file_engine(tmp_path):
    """File-backed SQLite for tests that use several threads."""
    engine = build_engine(f"sqlite:///{tmp_path / 'roles.sqlite'}", echo=False)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@pytest.fixture()
def store(session, clock) -> RoleAssignmentStore:
    return RoleAssignmentStore(session, clock=clock)


@pytest.fixture()
def make_person(session) -> Callable[..., Person]:
    """Insert a person and return it."""

    def _make(
        tenant_id: Optional[str] = "t-1",
        company_id: Optional[str] = "c-1",
        department_id: Optional[str] = "d-1",
        **fields,
    ) -> Person:
        person = Person(tenant_id=tenant_id, company_id=company_id, department_id=department_id, **fields)
        session.add(person)
        session.commit()
        session.refresh(person)
        return person

    return _make


@pytest.fixture()
def client(file_engine) -> Iterator[TestClient]:
    """TestClient bound to a throwaway database; lifespan is not run."""

    def _get_session():
        with Session(file_engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_statistics_service] = lambda: RoleStatisticsService(
        session_factory=lambda: Session(file_engine)
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
