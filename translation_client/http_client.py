import json
from typing import Any, Mapping, Optional, Type, TypeVar

import pydantic
from loguru import logger

from translation_client.backoff import BackoffTimer
from translation_client.exceptions import InvalidContentError, TranslatorConnectionError
from translation_client.models import (
    BackoffConfig,
    ConnectionFailure,
    RequestAttemptResult,
)
from translation_client.transport import Params, PathType, Transport

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def log_message(target: Any, level: str, message: str) -> None:
    """Log through ``target`` if it has a method for ``level``; None disables logging"""
    method = getattr(target, level, None)
    if callable(method):
        method(message)


class HttpClient:
    """Sends API requests, retrying transient failures with exponential backoff"""

    def __init__(
        self,
        server_url: str,
        headers: Optional[Mapping[str, str]] = None,
        min_timeout: float = 10.0,
        max_retries: int = 5,
        backoff: Optional[BackoffConfig] = None,
        transport: Optional[Transport] = None,
        proxy: Optional[str] = None,
        logger: Any = logger,
    ):
        self.server_url = server_url.rstrip("/")
        self.headers = dict(headers or {})
        self.min_timeout = min_timeout
        self.max_retries = max_retries
        self.backoff = backoff or BackoffConfig()
        self.transport = transport or Transport(proxy=proxy)
        self.logger = logger

    def _log_info(self, message: str) -> None:
        log_message(self.logger, "info", message)

    def _log_debug(self, message: str) -> None:
        log_message(self.logger, "debug", message)

    async def close(self) -> None:
        await self.transport.close()

    @staticmethod
    def _should_retry(result: RequestAttemptResult) -> bool:
        if isinstance(result, ConnectionFailure):
            return result.retryable
        # Too-many-requests and server errors
        return result.status_code == 429 or result.status_code >= 500

    async def send_request_with_backoff(
        self,
        method: str,
        path: str,
        params: Optional[Params] = None,
        headers: Optional[Mapping[str, str]] = None,
        file_path: Optional[PathType] = None,
        output_path: Optional[PathType] = None,
        file_name: Optional[str] = None,
    ) -> tuple[int, bytes]:
        """Send a request, retrying while the failure is transient and the budget allows.

        Returns the status code and body of the last response, whatever its
        status; interpreting error statuses is left to the caller. Raises
        TranslatorConnectionError if the last attempt got no response at all.
        """
        url = self.server_url + path
        request_headers = {**self.headers, **(headers or {})}
        self._log_info(f"Request to API {method} {url}")
        self._log_debug(f"Request details: {params}")

        backoff = BackoffTimer(self.backoff)
        while True:
            timeout = max(self.min_timeout, backoff.time_until_deadline())
            result = await self.transport.attempt(
                method,
                url,
                timeout,
                request_headers,
                params=params,
                file_path=file_path,
                output_path=output_path,
                file_name=file_name,
            )

            # Budget is checked before sleeping, so the last attempt is never followed by a wait
            if (
                not self._should_retry(result)
                or backoff.num_retries() + 1 >= self.max_retries
            ):
                break

            if isinstance(result, ConnectionFailure):
                self._log_debug(f"Encountered a retryable error: {result.message}")
            self._log_info(
                f"Starting retry {backoff.num_retries() + 1} for request {method} {url} "
                f"after sleeping for {backoff.time_until_deadline():.2f} seconds"
            )
            await backoff.sleep_until_deadline()

        if isinstance(result, ConnectionFailure):
            raise TranslatorConnectionError(result.message, retryable=result.retryable)

        self._log_info(f"API response {method} {url} {result.status_code}")
        self._log_debug(
            f"Response details: {result.body.decode('utf-8', errors='replace')}"
        )
        return result.status_code, result.body


def parse_json_body(content: bytes) -> Any:
    try:
        return json.loads(content)
    except ValueError as e:
        raise InvalidContentError(f"Could not decode response body: {e}") from e


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    """Validate decoded response data, treating a mismatch as invalid content"""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidContentError(f"Unexpected {model.__name__} response: {e}") from e
