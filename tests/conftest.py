import json
import os
from datetime import datetime, timedelta

# Settings are read at import time, give them test values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from lucy.core.security import hash_password
from lucy.main import app
from lucy.core import models
from lucy.core.database import Base, get_db
from lucy.core.pipeline.gemini import GeminiClient, get_gemini_client
from lucy.core.pipeline.powerbi import PowerBIClient, get_powerbi_client

PASSWORD = "password123"


# Fresh in-memory database for every test
@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine):
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# Users, lookups and a handful of orders across two plants
@pytest_asyncio.fixture(scope="function")
async def seed(db_session: AsyncSession):
    hashed_pwd = hash_password(PASSWORD)
    planner = models.User(
        name="Plant Planner",
        email="planner@example.com",
        password=hashed_pwd,
        authorization_level=1,
        plant="1200",
        role="Planner",
    )
    manager = models.User(
        name="Regional Manager",
        email="manager@example.com",
        password=hashed_pwd,
        authorization_level=3,
        plant=None,
        role="Manager",
    )
    worker = models.User(
        name="Shop Worker",
        email="worker@example.com",
        password=hashed_pwd,
        authorization_level=0,
        plant="1200",
        role="Worker",
    )
    other_plant = models.User(
        name="Other Plant",
        email="other@example.com",
        password=hashed_pwd,
        authorization_level=1,
        plant="3300",
        role="Planner",
    )
    dhl = models.Carrier(name="DHL")
    fedex = models.Carrier(name="FedEx")
    new = models.Status(name="new")
    approved = models.Status(name="approved")
    queretaro = models.Location(company_name="Supplier A", city="Queretaro")
    tijuana = models.Location(company_name="Customer B", city="Tijuana")

    db_session.add_all(
        [planner, manager, worker, other_plant, dhl, fedex, new, approved, queretaro, tijuana]
    )
    await db_session.flush()

    start = datetime(2024, 1, 1, 8, 0, 0)
    orders = []
    for index in range(6):
        creator = planner if index % 2 == 0 else other_plant
        orders.append(
            models.PremiumFreight(
                user_id=creator.id,
                date=start + timedelta(days=index),
                planta=creator.plant,
                transport="Air" if index % 3 == 0 else "Truck",
                in_out_bound="Inbound",
                cost_euros=100 + index * 10,
                category_cause="Supplier delay",
                carrier_id=dhl.id if index % 2 == 0 else fedex.id,
                status_id=new.id if index < 3 else approved.id,
                origin_id=queretaro.id,
                destiny_id=tijuana.id,
            )
        )
    db_session.add_all(orders)
    await db_session.commit()

    return {
        "planner": planner,
        "manager": manager,
        "worker": worker,
        "other_plant": other_plant,
        "orders": orders,
    }


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _login(client: AsyncClient, email: str):
    response = await client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return client


# Session for a plant-scoped user with authorization level 1
@pytest_asyncio.fixture(scope="function")
async def planner_client(client: AsyncClient, seed):
    return await _login(client, seed["planner"].email)


# Session for a user without plant (sees every plant)
@pytest_asyncio.fixture(scope="function")
async def manager_client(client: AsyncClient, seed):
    return await _login(client, seed["manager"].email)


# =========================
# Fake upstream services
# =========================
def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class ScriptedGemini:
    """Answers each Gemini call with the next scripted reply."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    @property
    def prompts(self):
        # The prompt is the last turn, earlier ones are conversation history
        return [body["contents"][-1]["parts"][0]["text"] for body in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        reply = self.replies.pop(0)
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=gemini_body(reply))

    def client(self) -> GeminiClient:
        return GeminiClient(
            api_key="test-gemini-key",
            model="gemini-test",
            base_url="https://gemini.test/v1beta",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


class FakePowerBI:
    """Minimal Power BI + identity provider, records every call."""

    def __init__(self, reports=None, failures=None):
        self.reports = reports or []
        self.failures = failures or {}
        self.calls = []
        self.payloads = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        if request.headers.get("content-type") == "application/json":
            self.payloads.append((path, json.loads(request.content)))

        for (method, suffix), response in self.failures.items():
            if request.method == method and path.endswith(suffix):
                return response

        if path.endswith("/oauth2/v2.0/token"):
            return httpx.Response(200, json={"access_token": "aad-token"})
        if request.method == "POST" and path.endswith("/datasets"):
            return httpx.Response(201, json={"id": "ds-1", "name": "dataset"})
        if path.endswith("/rows"):
            return httpx.Response(200)
        if path.endswith("/reports"):
            return httpx.Response(200, json={"value": self.reports})
        if path.endswith("/GenerateToken"):
            return httpx.Response(200, json={"token": "embed-token"})
        return httpx.Response(404, json={"error": {"message": f"no route for {path}"}})

    def client(self, **overrides) -> PowerBIClient:
        options = {
            "client_id": "client-id",
            "client_secret": "client-secret",
            "tenant_id": "tenant-id",
            "workspace_id": "ws-1",
            "api_url": "https://api.powerbi.test/v1.0/myorg",
            "authority_url": "https://login.test",
        }
        options.update(overrides)
        return PowerBIClient(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
            **options,
        )


@pytest.fixture
def scripted_gemini():
    """Factory: scripted_gemini("reply 1", "reply 2") wires the fake into the app."""

    def factory(*replies):
        fake = ScriptedGemini(*replies)
        app.dependency_overrides[get_gemini_client] = fake.client
        return fake

    yield factory
    app.dependency_overrides.pop(get_gemini_client, None)


@pytest.fixture
def fake_powerbi():
    def factory(**kwargs):
        fake = FakePowerBI(**kwargs)
        app.dependency_overrides[get_powerbi_client] = lambda: fake.client()
        return fake

    yield factory
    app.dependency_overrides.pop(get_powerbi_client, None)
