import asyncio
import errno
import os
from contextlib import ExitStack
from typing import Any, Mapping, Optional, Union

import aiohttp

from translation_client.models import (
    AttemptSuccess,
    ConnectionFailure,
    RequestAttemptResult,
)

PathType = Union[str, "os.PathLike[str]"]
Params = Mapping[str, Any]

_QUERY_METHODS = ("GET", "DELETE", "HEAD")


def encode_params(params: Optional[Params]) -> list[tuple[str, str]]:
    """Flatten request parameters, repeating the key for list values and skipping None"""
    pairs: list[tuple[str, str]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(item)) for item in value)
        else:
            pairs.append((key, str(value)))
    return pairs


def _is_refused(error: OSError) -> bool:
    return isinstance(error, ConnectionRefusedError) or error.errno == errno.ECONNREFUSED


class Transport:
    """Performs single HTTP request attempts; retrying is up to the caller"""

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        proxy: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.proxy = proxy
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    @staticmethod
    def _build_body(
        pairs: list[tuple[str, str]],
        file_path: Optional[PathType],
        file_name: Optional[str],
        files: ExitStack,
    ) -> Optional[aiohttp.FormData]:
        """Build a fresh request body; aiohttp bodies cannot be reused across attempts"""
        if file_path is None:
            return aiohttp.FormData(pairs) if pairs else None

        form = aiohttp.FormData()
        for key, value in pairs:
            form.add_field(key, value)
        upload = files.enter_context(open(file_path, "rb"))
        form.add_field(
            "file", upload, filename=file_name or os.path.basename(file_path)
        )
        return form

    async def _stream_to_file(
        self, response: aiohttp.ClientResponse, output_path: PathType
    ) -> None:
        """Write the body in chunks; file I/O runs in the default executor"""
        loop = asyncio.get_running_loop()
        sink = await loop.run_in_executor(None, open, output_path, "wb")
        try:
            async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                await loop.run_in_executor(None, sink.write, chunk)
        finally:
            await loop.run_in_executor(None, sink.close)

    async def attempt(
        self,
        method: str,
        url: str,
        timeout: float,
        headers: Mapping[str, str],
        params: Optional[Params] = None,
        file_path: Optional[PathType] = None,
        output_path: Optional[PathType] = None,
        file_name: Optional[str] = None,
    ) -> RequestAttemptResult:
        """Send one request and classify the outcome.

        Any HTTP response, including error statuses, is an ``AttemptSuccess``.
        When ``output_path`` is given a successful body is streamed to that
        file and the returned body is empty.
        """
        session = await self._ensure_session()
        pairs = encode_params(params)
        client_timeout = aiohttp.ClientTimeout(total=timeout, connect=timeout)

        try:
            with ExitStack() as files:
                request_kwargs: dict[str, Any] = {
                    "headers": dict(headers),
                    "timeout": client_timeout,
                    "proxy": self.proxy,
                }
                if method.upper() in _QUERY_METHODS and file_path is None:
                    request_kwargs["params"] = pairs
                else:
                    request_kwargs["data"] = self._build_body(
                        pairs, file_path, file_name, files
                    )

                async with session.request(method, url, **request_kwargs) as response:
                    if output_path is not None and 200 <= response.status < 300:
                        await self._stream_to_file(response, output_path)
                        return AttemptSuccess(status_code=response.status)

                    body = await response.read()
                    return AttemptSuccess(status_code=response.status, body=body)

        except aiohttp.InvalidURL as e:
            return ConnectionFailure(retryable=False, message=f"Invalid server URL. {e}")
        except asyncio.TimeoutError:
            return ConnectionFailure(
                retryable=True, message=f"Request timed out after {timeout:.2f}s"
            )
        except aiohttp.ClientSSLError as e:
            return ConnectionFailure(retryable=False, message=f"TLS error: {e}")
        except aiohttp.ClientConnectorError as e:
            # Only a refused connection is retryable, DNS failures are fatal
            return ConnectionFailure(
                retryable=_is_refused(e.os_error), message=f"Could not connect: {e}"
            )
        except aiohttp.ServerDisconnectedError as e:
            return ConnectionFailure(
                retryable=True, message=f"Server sent no response: {e}"
            )
        except aiohttp.ClientOSError as e:
            return ConnectionFailure(
                retryable=_is_refused(e), message=f"Connection error: {e}"
            )
        except aiohttp.ClientError as e:
            return ConnectionFailure(retryable=False, message=f"Request failed: {e}")
