"""
Pytest configuration and shared fixtures for conversation monitor tests.

This module provides:
- Database fixtures (per-test SQLite database, session management)
- Data factories (brands, started conversations)
- Service factory wired to an isolated turn sequencer
"""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conversation_monitor.models import Base, Brand
from conversation_monitor.services.conversation_monitoring import ConversationMonitoringService
from conversation_monitor.services.turn_sequencer import TurnSequencer


# ============================================================================
# Test Database Configuration
# ============================================================================

@pytest.fixture
def test_database_url(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    return f"sqlite+aiosqlite:///{tmp_path / 'conversation_monitor_test.db'}"


@pytest_asyncio.fixture
async def test_engine(test_database_url):
    engine = create_async_engine(test_database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """One session per test; closed (and rolled back if dirty) afterwards."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest_asyncio.fixture
async def brand_factory(session_factory):
    """Create and commit brands from a dedicated session."""

    async def _create(name: str = "TechCorp", keywords=None) -> Brand:
        async with session_factory() as session:
            brand = Brand(
                id=uuid.uuid4(),
                name=name,
                monitoring_keywords=list(keywords) if keywords is not None else [],
            )
            session.add(brand)
            await session.commit()
            return brand

    return _create


@pytest.fixture
def turn_sequencer():
    return TurnSequencer()


@pytest.fixture
def service_factory(turn_sequencer):
    """Build a monitoring service for a session, sharing one sequencer per test."""

    def _build(session: AsyncSession, **kwargs) -> ConversationMonitoringService:
        kwargs.setdefault("sequencer", turn_sequencer)
        return ConversationMonitoringService(session, **kwargs)

    return _build


@pytest.fixture
def monitoring_service(db_session, service_factory):
    return service_factory(db_session)


@pytest.fixture
def check_invariants(session_factory):
    """
    Provides a convenience function to check all stored invariants for a conversation.

    Usage:
        async def test_something(check_invariants):
            # ... create test data ...
            await check_invariants(conversation_id)  # Will raise if invariants violated
    """
    from conversation_monitor.tests.invariants import check_all_invariants

    async def _check(conversation_id):
        async with session_factory() as session:
            await check_all_invariants(session, conversation_id)

    return _check


# ============================================================================
# Pytest Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that exercise the database-backed service"
    )
