"""
Collector Server - Test Fixtures
"""

import pytest
import pytest_asyncio

from server.db import MetricsStore
from server.services import CollectorServer, CommandStore


@pytest_asyncio.fixture
async def store(tmp_path):
    metrics_store = MetricsStore(str(tmp_path / "collector.db"))
    await metrics_store.init()
    return metrics_store


@pytest.fixture
def commands():
    return CommandStore()


@pytest_asyncio.fixture
async def collector_server(store, commands):
    server = CollectorServer(host="127.0.0.1", port=0, store=store, commands=commands)
    await server.start()
    yield server
    await server.stop()
