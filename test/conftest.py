from typing import AsyncGenerator

import pytest
import pytest_asyncio
from translation_server import MockTranslationServer
from translation_client.models import (
    BackoffConfig,
    DocumentPollingConfig,
    TranslatorOptions,
)
from translation_client.translation_client import TranslationClient

BASE_URL_TEMPLATE = "http://127.0.0.1:{}"


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[tuple[MockTranslationServer, int], None]:
    """Start and yield a mock translation server on a free port."""
    server_instance = MockTranslationServer()
    port = await server_instance.start()
    try:
        yield server_instance, port
    finally:
        await server_instance.stop()


@pytest.fixture
def options() -> TranslatorOptions:
    """Client options with short delays so retries and polling stay fast."""
    return TranslatorOptions(
        timeout=1.0,
        max_retries=5,
        backoff=BackoffConfig(initial_delay=0.05, max_delay=0.2, jitter=0.0),
        polling=DocumentPollingConfig(min_delay=0.05, max_delay=0.2, default_delay=0.05),
    )


@pytest_asyncio.fixture
async def make_client(server, options):
    """Build clients pointed at the mock server; all are closed after the test."""
    server_instance, port = server
    clients = []

    def _make(auth_key=None, **overrides) -> TranslationClient:
        client_options = options.model_copy(
            update={"server_url": BASE_URL_TEMPLATE.format(port), **overrides}
        )
        client = TranslationClient(auth_key or server_instance.auth_key, client_options)
        clients.append(client)
        return client

    try:
        yield _make
    finally:
        for created in clients:
            await created.close()


@pytest_asyncio.fixture
async def client(make_client) -> TranslationClient:
    return make_client()


@pytest.fixture
def example_document(tmp_path):
    path = tmp_path / "example.txt"
    path.write_text("Hello, world!")
    return path
