"""Database engine and session factory"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config.settings import settings

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_pre_ping=True,
)

# Records are handed back to callers after the session closes
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def init_db() -> None:
    """Create tables that do not exist yet."""
    from app import models  # noqa: F401  registers mappers on Base

    Base.metadata.create_all(bind=engine)
