import contextlib
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app import models  # noqa: F401  (registers every table on the metadata)
from app.api import deps
from app.db.session import get_db
from app.main import app
from app.services.notifier import CompletionNotifier
from tests.factories import RecordingSink


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    with Session(engine) as session:
        yield session


class QueryCounter:
    def __init__(self):
        self.statements: List[str] = []

    @property
    def count(self) -> int:
        return len(self.statements)

    def __call__(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)


@pytest.fixture()
def count_queries(engine):
    """Context manager counting SQL statements sent to the test engine."""

    @contextlib.contextmanager
    def _count():
        counter = QueryCounter()
        event.listen(engine, "before_cursor_execute", counter)
        try:
            yield counter
        finally:
            event.remove(engine, "before_cursor_execute", counter)

    return _count


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def notifier(engine, sink):
    return CompletionNotifier(sink=sink, session_factory=lambda: Session(engine), max_workers=4)


@pytest.fixture()
def client(engine, notifier):
    def _get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_completion_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
