from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.database import Base
from app import models  # noqa: F401  registers tables on Base

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def trending_html() -> str:
    return (FIXTURES_DIR / "trending_weekly.html").read_text(encoding="utf-8")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()
