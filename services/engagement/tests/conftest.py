import os
import tempfile

# Must be set before any shared module reads the settings
_BOOTSTRAP_DIR = tempfile.mkdtemp(prefix="buonumore-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_BOOTSTRAP_DIR, 'bootstrap.db')}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["OPENAI_API_KEY"] = ""

import fakeredis
import pytest
from sqlalchemy import event

from shared.database import session as db_session
from shared.database.base import Base
from shared.schemas.articles import TransientArticle, UserProfile
from shared.utils.redis_client import RedisClient, close_all_redis_clients


@pytest.fixture
def db_engine(tmp_path):
    engine = db_session._create_engine(f"sqlite:///{tmp_path / 'engagement.db'}")
    previous = db_session.SessionLocal.kw["bind"]
    db_session.SessionLocal.configure(bind=engine)
    Base.metadata.create_all(engine)
    yield engine
    db_session.SessionLocal.configure(bind=previous)
    engine.dispose()


@pytest.fixture
def statements(db_engine):
    """SQL statements executed against the test database while the test runs."""
    executed = []

    def record(conn, cursor, statement, parameters, context, executemany):
        executed.append(statement)

    event.listen(db_engine, "before_cursor_execute", record)
    yield executed
    event.remove(db_engine, "before_cursor_execute", record)


@pytest.fixture
def fake_redis(monkeypatch):
    r = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr("shared.utils.redis_client.redis.from_url", lambda *args, **kw: r)
    close_all_redis_clients()
    yield r
    close_all_redis_clients()


@pytest.fixture
def redis_client(fake_redis):
    return RedisClient("engagement-test")


@pytest.fixture
def user():
    return UserProfile(id="user-1", username="Alice", avatar="https://example.org/alice.png")


@pytest.fixture
def other_user():
    return UserProfile(id="user-2", username="Bruno", avatar=None)


@pytest.fixture
def make_article():
    def factory(url="https://news.example.org/story/1", title="Una buona notizia", category="Generale", **kw):
        return TransientArticle(url=url, title=title, summary="Riassunto", source="Example", category=category, **kw)

    return factory


@pytest.fixture
def stored_article(db_engine, make_article):
    from services.engagement.app.articles import save_articles

    return save_articles("Generale", [make_article()])[0]
