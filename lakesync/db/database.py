from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import logging
import os
from dotenv import load_dotenv

load_dotenv()

from lakesync.core.config import DATABASE_URL

logger = logging.getLogger(__name__)


# Check if we should echo the SQL queries - never in production
def should_echo_sql():
    if os.getenv("ENVIRONMENT") == "production":
        return False
    return os.getenv("SQL_DEBUG", "false").lower() == "true"

echo = should_echo_sql()


# Database configuration
def get_database_engine(url: str = DATABASE_URL):
    if url.startswith("sqlite"):
        # SQLite specific configuration
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo
        )
    else:
        # PostgreSQL configuration
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_recycle=300,
            echo=echo
        )

engine = get_database_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create the storage-core schema.

    Runs once from the application lifespan before any request is served.
    `create_all` skips existing tables, so concurrent workers converge.
    """
    from lakesync.db.models import Base

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Schema ensured on %s", target.url.render_as_string(hide_password=True))


def ping(db) -> bool:
    db.execute(text("SELECT 1"))
    return True


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
