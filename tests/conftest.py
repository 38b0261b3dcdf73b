import os

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.db import Base, Database
from app.models.conversation import Platform
from app.services.conversation_locks import conversation_locks
from app.services.ingestion import ingest
from app.services.integrations import integrations
from app.services.meta_messaging import MetaGraphClient
from tests.mocks import GRAPH_BASE, GraphRecorder, make_event


@pytest.fixture()
async def engine(tmp_path):
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        engine = create_async_engine(database_url, poolclass=NullPool)
    else:
        # File database: concurrent sessions need separate connections.
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'inbox.db'}",
            poolclass=NullPool,
        )
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def database(engine):
    return Database(engine)


@pytest.fixture()
def session_factory(database):
    return database.sessionmaker


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _clear_token_cache():
    integrations.cache.invalidate()
    yield
    integrations.cache.invalidate()


@pytest.fixture()
def graph_recorder():
    return GraphRecorder()


@pytest.fixture()
async def graph(graph_recorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(graph_recorder.handler))
    yield MetaGraphClient(client=client, base_url=GRAPH_BASE, timeout=2.0)
    await client.aclose()


@pytest.fixture()
async def conversation(db_session):
    """Facebook conversation fb:123:456 with one inbound message."""
    event = make_event()
    await ingest(db_session, event)
    return await conversation_locks.get(db_session, event.conversation_key)


@pytest.fixture()
async def page_integration(db_session):
    return await integrations.upsert(db_session, Platform.facebook, "456", "page-token-456")
