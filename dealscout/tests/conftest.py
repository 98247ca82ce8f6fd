"""Shared fixtures and record factories for DealScout tests."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dealscout.models import Base
from dealscout.store import InMemoryStore
from dealscout.types import Company, EnrichmentPayload, Signal

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def make_signal(type="funding", days_ago=10, confidence="high", is_new=False, title=None, **kwargs) -> Signal:
    return Signal(
        type=type,
        title=title or f"{type} event",
        timestamp=NOW - timedelta(days=days_ago),
        confidence=confidence,
        is_new=is_new,
        **kwargs,
    )


def make_company(**overrides) -> Company:
    fields = {
        "id": "c1",
        "name": "Acme AI",
        "sector": "AI/ML",
        "stage": "Pre-Seed",
        "geography": "San Francisco, US",
        "headcount": "1-10",
        "founder_names": ("Jane Doe",),
        "tags": (),
        "signals": (),
    }
    fields.update(overrides)
    return Company(**fields)


def make_enrichment(**overrides) -> EnrichmentPayload:
    fields = {"status": "success", "summary": None, "keywords": ()}
    fields.update(overrides)
    return EnrichmentPayload(**fields)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def engine():
    """In-memory SQLite shared across connections via StaticPool."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()
