# backend/tests/conftest.py
"""
Shared fixtures for all test modules.

Tests run against a throwaway SQLite file per test (aiosqlite), created from
the ORM metadata. Async code is driven with asyncio.run() inside plain test
functions; there are no async fixtures.
"""

import asyncio
import os

# Settings are read at import time; these must be in place before app.* is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_inbox.db")
os.environ.setdefault("STATUS_SIM_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.shared.db.base import Base
from app.shared.db.session import configure_sqlite_engine, get_db
from app.shared.utils.cache import app_cache
from app.modules.whatsapp_inbox.models import Contact, Message  # noqa: F401


# --- DATABASE FIXTURES ---
@pytest.fixture
def db_factory(tmp_path):
    """
    Session factory bound to a fresh SQLite database with the full schema.

    NullPool: every session opens its own connection, so the same factory
    can be used from several asyncio.run() calls.
    """
    engine = configure_sqlite_engine(
        create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inbox.db'}", poolclass=NullPool)
    )

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())

    yield sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )

    asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def clear_conversation_cache():
    """The ranked list cache is process-wide; never let it leak between tests."""
    app_cache.clear_all()
    yield
    app_cache.clear_all()


# --- TEST CLIENT FIXTURE ---
@pytest.fixture
def test_client(db_factory):
    """FastAPI test client whose get_db dependency uses the test database."""
    async def override_get_db():
        async with db_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


# --- WEBHOOK PAYLOAD BUILDERS ---
def build_message_payload(
    external_id: str,
    sender: str = "555",
    body: str = "hi",
    timestamp: int = 1000,
    name: str = "Ana",
    message_type: str = "text"
) -> dict:
    """A WhatsApp Cloud API delivery carrying one inbound message."""
    message = {
        "id": external_id,
        "from": sender,
        "timestamp": str(timestamp),
        "type": message_type,
    }
    if message_type == "text":
        message["text"] = {"body": body}
    else:
        message[message_type] = {"id": "media-1"}

    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "waba-1",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"display_phone_number": "15550000000", "phone_number_id": "pn-1"},
                    "contacts": [{"wa_id": sender, "profile": {"name": name}}] if name else [],
                    "messages": [message],
                }
            }]
        }]
    }


def build_status_payload(*statuses) -> dict:
    """A delivery carrying status events, given as (correlation_id, status) pairs."""
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "waba-1",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"display_phone_number": "15550000000", "phone_number_id": "pn-1"},
                    "statuses": [
                        {"id": correlation_id, "status": status, "timestamp": "2000", "recipient_id": "555"}
                        for correlation_id, status in statuses
                    ],
                }
            }]
        }]
    }


@pytest.fixture
def message_payload():
    return build_message_payload


@pytest.fixture
def status_payload():
    return build_status_payload


# --- SAMPLE CONTACT DATA ---
@pytest.fixture
def sample_contact():
    return {
        "wa_id": "919876543210",
        "name": "Ravi Kumar",
        "notes": "Prefers mornings",
        "labels": ["customer", " vip ", "customer"],
    }
