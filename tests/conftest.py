"""Test configuration and fixtures for fieldql."""

import asyncio
import os
import sys
from typing import AsyncGenerator

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fieldql.sql import SQLAlchemyDriver
from tests.schema import compiled

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def event_loop_policy():
    """Set event loop policy for Windows compatibility."""
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    yield


@pytest.fixture(scope="function")
async def engine():
    """Create a test database engine with the shared schema's tables."""
    test_db_url = os.getenv('FIELDQL_TEST_DATABASE_URL')
    tables = compiled.sql_tables()
    if test_db_url:
        engine = create_async_engine(test_db_url, echo=False, future=True, pool_pre_ping=True)
        # Clean slate on external databases
        async with engine.begin() as conn:
            await conn.run_sync(tables.metadata.drop_all)
            await tables.create_all(conn)
    else:
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, future=True)
        async with engine.begin() as conn:
            await tables.create_all(conn)

    yield engine

    if test_db_url:
        async with engine.begin() as conn:
            await conn.run_sync(tables.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for each test function."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
def context(db_session):
    """GraphQL context carrying the session, as the application would pass it."""
    return {"db_session": db_session}


@pytest.fixture(scope="function")
def ops(db_session):
    """Request-time operations bound to the test session."""
    return compiled.operations(SQLAlchemyDriver(db_session, compiled))
