import errno
import json
import socket
from typing import AsyncGenerator

import aiohttp
import pytest
import pytest_asyncio
from translation_client.models import AttemptSuccess, ConnectionFailure
from translation_client.transport import Transport, encode_params

BASE_URL_TEMPLATE = "http://127.0.0.1:{}"


@pytest_asyncio.fixture
async def transport() -> AsyncGenerator[Transport, None]:
    transport_instance = Transport()
    try:
        yield transport_instance
    finally:
        await transport_instance.close()


def _auth_headers(server_instance):
    return {"Authorization": f"DeepL-Auth-Key {server_instance.auth_key}"}


def _closed_port() -> int:
    """Return a local port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_encode_params_repeats_lists_and_skips_none():
    pairs = encode_params({"text": ["a", "b"], "source_lang": None, "target_lang": "de"})
    assert pairs == [("text", "a"), ("text", "b"), ("target_lang", "de")]
    assert encode_params(None) == []


@pytest.mark.asyncio
async def test_unsupported_scheme_is_fatal(transport):
    result = await transport.attempt("GET", "ftp://example.com/v2/usage", 1.0, {})
    assert isinstance(result, ConnectionFailure)
    assert not result.retryable


@pytest.mark.asyncio
async def test_malformed_url_is_fatal(transport):
    result = await transport.attempt("GET", "not a url", 1.0, {})
    assert isinstance(result, ConnectionFailure)
    assert not result.retryable
    assert "Invalid server URL" in result.message


@pytest.mark.asyncio
async def test_connection_refused_is_retryable(transport):
    url = BASE_URL_TEMPLATE.format(_closed_port()) + "/v2/usage"
    result = await transport.attempt("GET", url, 1.0, {})
    assert isinstance(result, ConnectionFailure)
    assert result.retryable


@pytest.mark.asyncio
async def test_unresolvable_host_is_fatal(transport):
    result = await transport.attempt("GET", "http://no-such-host.invalid/v2/usage", 5.0, {})
    assert isinstance(result, ConnectionFailure)
    assert not result.retryable


class FailingSession:
    closed = False

    def __init__(self, error):
        self.error = error

    def request(self, method, url, **kwargs):
        raise self.error

    async def close(self):
        pass


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, retryable",
    [
        (aiohttp.ClientOSError(errno.ECONNREFUSED, "refused"), True),
        (aiohttp.ClientOSError(errno.ECONNRESET, "reset"), False),
        (aiohttp.ClientOSError(errno.EPIPE, "broken pipe"), False),
        (aiohttp.ServerDisconnectedError(), True),
    ],
)
async def test_connection_errors_classification(error, retryable):
    transport = Transport(session=FailingSession(error))

    result = await transport.attempt("GET", "http://127.0.0.1/v2/usage", 1.0, {})

    assert isinstance(result, ConnectionFailure)
    assert result.retryable is retryable


@pytest.mark.asyncio
async def test_timeout_is_retryable(server, transport):
    server_instance, port = server
    server_instance.no_response_count = 1
    url = BASE_URL_TEMPLATE.format(port) + "/v2/usage"

    result = await transport.attempt("GET", url, 0.1, _auth_headers(server_instance))

    assert isinstance(result, ConnectionFailure)
    assert result.retryable
    assert "timed out" in result.message


@pytest.mark.asyncio
async def test_error_status_is_still_a_response(server, transport):
    """HTTP errors are left for the caller to interpret."""
    server_instance, port = server
    url = BASE_URL_TEMPLATE.format(port) + "/v2/usage"

    result = await transport.attempt("GET", url, 1.0, {"Authorization": "wrong"})

    assert isinstance(result, AttemptSuccess)
    assert result.status_code == 403
    assert json.loads(result.body)["message"] == "Invalid auth key"


@pytest.mark.asyncio
async def test_repeated_form_params_are_sent(server, transport):
    server_instance, port = server
    url = BASE_URL_TEMPLATE.format(port) + "/v2/translate"

    result = await transport.attempt(
        "POST",
        url,
        1.0,
        _auth_headers(server_instance),
        params={"text": ["one", "two"], "target_lang": "de"},
    )

    assert isinstance(result, AttemptSuccess)
    assert result.status_code == 200
    texts = [t["text"] for t in json.loads(result.body)["translations"]]
    assert texts == ["[DE] one", "[DE] two"]


@pytest.mark.asyncio
async def test_successful_body_is_streamed_to_output(server, transport, tmp_path):
    server_instance, port = server
    url = BASE_URL_TEMPLATE.format(port) + "/v2/languages"
    output = tmp_path / "languages.json"

    result = await transport.attempt(
        "GET", url, 1.0, _auth_headers(server_instance), output_path=output
    )

    assert isinstance(result, AttemptSuccess)
    assert result.body == b""
    languages = json.loads(output.read_bytes())
    assert {"language": "DE", "name": "German"} in languages


@pytest.mark.asyncio
async def test_error_body_is_not_written_to_output(server, transport, tmp_path):
    server_instance, port = server
    url = BASE_URL_TEMPLATE.format(port) + "/v2/languages"
    output = tmp_path / "languages.json"

    result = await transport.attempt("GET", url, 1.0, {}, output_path=output)

    assert result.status_code == 403
    assert b"Invalid auth key" in result.body
    assert not output.exists()


@pytest.mark.asyncio
async def test_file_upload_uses_multipart(server, transport, example_document):
    server_instance, port = server
    url = BASE_URL_TEMPLATE.format(port) + "/v2/document"

    result = await transport.attempt(
        "POST",
        url,
        1.0,
        _auth_headers(server_instance),
        params={"target_lang": "de"},
        file_path=example_document,
    )

    assert result.status_code == 200
    document_id = json.loads(result.body)["document_id"]
    assert server_instance.documents[document_id].content == b"Hello, world!"
