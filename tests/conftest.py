# tests/conftest.py
from datetime import timedelta

import pytest
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager

from foodconnect.core.config import settings
from foodconnect.core.security import create_token
from foodconnect.db import USERS, utcnow
from foodconnect.deps import get_notifier, get_repo
from foodconnect.main import app
from foodconnect.repos.inmemory import InMemoryRepo
from foodconnect.services.notify import EmailNotifier


class RecordingNotifier(EmailNotifier):
    """Keeps outbound mail in memory instead of talking to SMTP."""

    def __init__(self):
        super().__init__(settings)
        self.sent = []

    async def send(self, to, subject, html_body):
        self.sent.append({"to": to, "subject": subject, "html": html_body})


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"

@pytest.fixture
def repo():
    return InMemoryRepo()

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def now():
    return utcnow()

@pytest.fixture
async def users(repo):
    """Donor in Manila, two organizations ~3 km and ~5.5 km away, one far away."""
    people = [
        {"_id": "donor1", "role": "donor", "name": "Donor A", "email": "donor@example.com",
         "phone": "0917", "city": "Manila", "latitude": 14.5995, "longitude": 120.9842},
        {"_id": "donor2", "role": "donor", "name": "Donor B", "email": "donor2@example.com",
         "city": "Manila", "latitude": 14.6095, "longitude": 120.9842},
        {"_id": "org1", "role": "organization", "name": "Org One", "email": "org1@example.com",
         "phone": "0918", "city": "Manila", "latitude": 14.6265, "longitude": 120.9842},
        {"_id": "org2", "role": "organization", "name": "Org Two", "email": "org2@example.com",
         "city": "Manila", "latitude": 14.6495, "longitude": 120.9842},
        {"_id": "org3", "role": "organization", "name": "Org Three", "email": "org3@example.com",
         "city": "Cebu", "latitude": 10.3157, "longitude": 123.8854},
    ]
    for p in people:
        await repo.insert_one(USERS, p)
    return {p["_id"]: p for p in people}

@pytest.fixture
async def test_client(repo, notifier):
    app.dependency_overrides[get_repo] = lambda: repo
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        async with LifespanManager(app):
            transport = ASGITransport(app=app, raise_app_exceptions=True)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str):
    tok = create_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {tok}"}

def in_hours(hours: float, now=None):
    return (now or utcnow()) + timedelta(hours=hours)
