"""Shared test fixtures for lnurlbridge."""

import pytest
from fastapi.testclient import TestClient

from lnurlbridge.api.app import create_app
from lnurlbridge.core.events.base import BaseEvent, GlobalEventBus
from lnurlbridge.utils.config import Settings
from tests.fakes import FakeNodeRpc


@pytest.fixture
def fake_node():
    """Node the server talks to."""
    return FakeNodeRpc(seed=1, addresses=("203.0.113.10:9735",))


@pytest.fixture
def wallet_node():
    """Node on the requester (client) side."""
    return FakeNodeRpc(seed=2, addresses=("198.51.100.7:9735",))


@pytest.fixture
def event_bus():
    """Fresh event bus per test."""
    return GlobalEventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on ``event_bus``, in order."""
    events: list[BaseEvent] = []

    async def record(event: BaseEvent) -> None:
        events.append(event)

    event_bus.subscribe(BaseEvent, record)
    return events


@pytest.fixture
def settings():
    """Server settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        callback_base_url="http://testserver/",
        payment_workers=2,
        payment_queue_size=10,
        node_address=None,
    )


@pytest.fixture
def app(settings, fake_node, event_bus):
    return create_app(settings, node_rpc=fake_node, event_bus=event_bus)


@pytest.fixture
def client(app):
    """HTTP client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client
