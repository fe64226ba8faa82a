from contextlib import contextmanager

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.database.base import Base
from shared.database.models.article import Article  # noqa: F401
from shared.database.models.category import Category
from shared.database.models.comment import Comment  # noqa: F401
from shared.database.models.engagement import Dislike, Favorite, Like  # noqa: F401
from shared.database.models.user import User  # noqa: F401

logger = get_logger("database")

# Get database configuration
settings = get_settings()
DATABASE_URL = settings.database.database_url

# Global categories seeded into an empty table
DEFAULT_CATEGORIES = [
    ("Generale", "notizie positive dal mondo"),
    ("Scienza", "scoperte scientifiche positive"),
    ("Ambiente", "buone notizie per l'ambiente"),
    ("Salute", "progressi positivi nella salute"),
    ("Comunità", "storie positive di comunità e solidarietà"),
]


def _create_engine(url: str):
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


logger.info(f"▶︎ Connecting to database: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else DATABASE_URL}")

engine = _create_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def seed_categories(session) -> int:
    """Insert the global default categories when the table is empty."""
    count = session.scalar(select(func.count()).select_from(Category))
    if count:
        return 0
    for label, value in DEFAULT_CATEGORIES:
        session.add(Category(label=label, value=value, user_id=None))
    session.commit()
    logger.info(f"🌱 Seeded {len(DEFAULT_CATEGORIES)} default categories")
    return len(DEFAULT_CATEGORIES)


def init_db():
    """Initialize database tables and seed default categories."""
    try:
        bind = SessionLocal.kw["bind"]
        Base.metadata.create_all(bind=bind)
        with SessionLocal() as session:
            seed_categories(session)
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {e}")
        raise


@contextmanager
def session_scope():
    """Yield a session; roll back on error and always close."""
    session = SessionLocal()
    try:
        yield session
    except Exception as e:
        logger.error(f"Database session error: {e}")
        session.rollback()
        raise
    finally:
        session.close()
