from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.persistence.pg as pg
from app.core.config import Settings, get_settings
from app.notifications.mailer import InMemoryMailer, set_mailer
from app.persistence.models import Base


class FixedClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingPublisher:
    def __init__(self):
        self.published = []

    def publish(self, intent) -> bool:
        self.published.append(intent)
        return True


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.mail_backend = "memory"

    engine = pg.create_engine_from_url(f"sqlite+pysqlite:///{test_db_path}")
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    with pg.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture()
def mailer():
    memory = InMemoryMailer()
    set_mailer(memory)
    yield memory
    set_mailer(None)


@pytest.fixture()
def client(configure_test_engine, mailer):
    from app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def clock():
    return FixedClock(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def worker_settings():
    return Settings(
        mail_backend="memory",
        worker_batch_size=10,
        worker_concurrency=1,
        worker_lease_seconds=60,
        notification_max_attempts=3,
        notification_retry_delay_seconds=0,
    )
