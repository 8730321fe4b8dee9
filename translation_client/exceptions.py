import json
from typing import Optional

from translation_client.models import DocumentHandle


class TranslatorError(Exception):
    """Base exception for all errors raised by the client"""


class TranslatorConnectionError(TranslatorError):
    """No response could be obtained from the server, even after retries"""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class InvalidParameterError(TranslatorError, ValueError):
    """An argument was rejected before any request was sent"""


class InvalidContentError(TranslatorError):
    """The server answered with a body that could not be decoded"""


class AuthorizationError(TranslatorError):
    pass


class QuotaExceededError(TranslatorError):
    pass


class TooManyRequestsError(TranslatorError):
    pass


class NotFoundError(TranslatorError):
    pass


class GlossaryNotFoundError(NotFoundError):
    pass


class DocumentNotReadyError(TranslatorError):
    pass


class DocumentTranslationError(TranslatorError):
    """A document translation failed.

    The handle is attached so the job can still be inspected, or downloaded
    later, after the error.
    """

    def __init__(
        self,
        message: str,
        handle: Optional[DocumentHandle],
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.handle = handle
        self.cause = cause

    def __str__(self) -> str:
        message = super().__str__()
        if self.handle is not None:
            message += f", document handle: {self.handle}"
        return message


def _error_details(content: bytes) -> str:
    """Extract message/detail from a JSON error body, falling back to the raw text"""
    text = content.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        return f", {text}" if text else ""

    details = ""
    if isinstance(data, dict):
        if "message" in data:
            details += f", message: {data['message']}"
        if "detail" in data:
            details += f", detail: {data['detail']}"
    return details


def raise_for_status(
    status_code: int,
    content: bytes,
    glossary: bool = False,
    downloading_document: bool = False,
) -> None:
    """Raise the exception matching a final HTTP status code, if it is an error"""
    if 200 <= status_code < 400:
        return

    details = _error_details(content)

    if status_code == 403:
        raise AuthorizationError(f"Authorization failure, check auth_key{details}")
    if status_code == 456:
        raise QuotaExceededError(
            f"Quota for this billing period has been exceeded{details}"
        )
    if status_code == 404:
        if glossary:
            raise GlossaryNotFoundError(f"Glossary not found{details}")
        raise NotFoundError(f"Not found, check server_url{details}")
    if status_code == 400:
        raise TranslatorError(f"Bad request{details}")
    if status_code == 429:
        raise TooManyRequestsError(
            f"Too many requests, the server is currently experiencing high load{details}"
        )
    if status_code == 503:
        if downloading_document:
            raise DocumentNotReadyError(f"Document not ready{details}")
        raise TranslatorError(f"Service unavailable{details}")
    raise TranslatorError(f"Unexpected status code: {status_code}{details}")
