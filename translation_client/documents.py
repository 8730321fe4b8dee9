import asyncio
import os
from typing import Any, Awaitable, Callable, Optional

from translation_client.exceptions import (
    DocumentNotReadyError,
    DocumentTranslationError,
    InvalidParameterError,
    raise_for_status,
)
from translation_client.http_client import (
    HttpClient,
    log_message,
    parse_json_body,
    parse_model,
)
from translation_client.languages import build_translation_params
from translation_client.models import (
    DocumentHandle,
    DocumentPollingConfig,
    DocumentState,
    DocumentStatus,
    GlossaryRef,
)
from translation_client.transport import PathType

SUPPORTED_EXTENSIONS = frozenset(
    {"docx", "doc", "pptx", "xlsx", "pdf", "htm", "html", "txt", "xlf", "xliff", "srt"}
)

StatusCallback = Callable[[DocumentStatus], Awaitable[Any]]


class DocumentTranslator:
    """Drives asynchronous document jobs: upload, poll the status, download the result"""

    def __init__(
        self,
        client: HttpClient,
        config: Optional[DocumentPollingConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
    ):
        self.client = client
        self.config = config or DocumentPollingConfig()
        self.on_status_change = on_status_change
        self.logger = getattr(client, "logger", None)

    def _log_info(self, message: str) -> None:
        log_message(self.logger, "info", message)

    def _log_debug(self, message: str) -> None:
        log_message(self.logger, "debug", message)

    def _log_error(self, message: str) -> None:
        log_message(self.logger, "error", message)

    @staticmethod
    def validate_document(file_path: PathType, filename: Optional[str] = None) -> None:
        """Reject missing files and unsupported document types before anything is sent"""
        if not os.path.isfile(file_path):
            raise InvalidParameterError(f"Document not found: {file_path}")

        name = filename or os.path.basename(file_path)
        extension = os.path.splitext(name)[1].lstrip(".").lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise InvalidParameterError(
                f"Invalid file extension '{extension}' for document {name}, "
                f"supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )

    async def upload(
        self,
        file_path: PathType,
        source_lang: Optional[str],
        target_lang: str,
        formality: Optional[str] = None,
        glossary: Optional[GlossaryRef] = None,
        filename: Optional[str] = None,
    ) -> DocumentHandle:
        """Upload a document for translation and return the handle of the new job"""
        self.validate_document(file_path, filename)
        params = build_translation_params(source_lang, target_lang, formality, glossary)

        status_code, content = await self.client.send_request_with_backoff(
            "POST",
            "/v2/document",
            params=params,
            file_path=file_path,
            file_name=filename,
        )
        raise_for_status(status_code, content)

        handle = parse_model(DocumentHandle, parse_json_body(content))
        self._log_info(f"Uploaded {file_path} as document {handle.document_id}")
        return handle

    async def get_status(self, handle: DocumentHandle) -> DocumentStatus:
        """Fetch the current status of a job once"""
        status_code, content = await self.client.send_request_with_backoff(
            "POST",
            f"/v2/document/{handle.document_id}",
            params={"document_key": handle.document_key},
        )
        raise_for_status(status_code, content)
        return parse_model(DocumentStatus, parse_json_body(content))

    def _calculate_delay(self, status: DocumentStatus) -> float:
        """Wait before the next status check, based on the server's estimate when it gives one"""
        if status.seconds_remaining is None:
            delay = self.config.default_delay
        else:
            delay = status.seconds_remaining / 2.0 + self.config.min_delay
        return max(self.config.min_delay, min(delay, self.config.max_delay))

    async def _handle_status_change(
        self, status: DocumentStatus, last_state: Optional[DocumentState]
    ) -> None:
        """Invoke the status change callback if the state has changed"""
        if last_state == status.status:
            return
        self._log_info(f"Document {status.document_id} is {status.status.value}")
        if self.on_status_change is not None:
            await self.on_status_change(status)

    async def wait_until_complete(self, handle: DocumentHandle) -> DocumentStatus:
        """Poll the job until it is done.

        Raises DocumentTranslationError, carrying the handle, if the job ends in
        the error state, and TimeoutError if the configured timeout elapses first.
        """
        loop = asyncio.get_running_loop()
        deadline = None
        if self.config.timeout is not None:
            deadline = loop.time() + self.config.timeout
        last_state = None

        while True:
            status = await self.get_status(handle)
            await self._handle_status_change(status, last_state)
            last_state = status.status

            if status.terminal:
                break

            delay = self._calculate_delay(status)
            if deadline is not None and loop.time() + delay > deadline:
                raise TimeoutError(
                    f"Document {handle.document_id} did not complete within "
                    f"{self.config.timeout} seconds"
                )
            self._log_debug(
                f"Document {handle.document_id} is {status.status.value}, "
                f"waiting {delay:.2f}s before next status check"
            )
            await asyncio.sleep(delay)

        if not status.ok:
            raise DocumentTranslationError(
                "Error occurred while translating document: "
                f"{status.error_message or 'unknown error'}",
                handle,
            )
        return status

    async def download(
        self,
        handle: DocumentHandle,
        output_path: PathType,
        status: Optional[DocumentStatus] = None,
    ) -> None:
        """Stream the translated document to output_path.

        Only a finished job can be downloaded; unless a done status is passed
        in, the status is checked first.
        """
        if status is None or not status.done:
            status = await self.get_status(handle)
        if status.status == DocumentState.error:
            raise DocumentTranslationError(
                "Document translation failed, nothing to download: "
                f"{status.error_message or 'unknown error'}",
                handle,
            )
        if not status.done:
            raise DocumentNotReadyError(
                f"Document {handle.document_id} is {status.status.value}, not ready for download"
            )

        status_code, content = await self.client.send_request_with_backoff(
            "POST",
            f"/v2/document/{handle.document_id}/result",
            params={"document_key": handle.document_key},
            output_path=output_path,
        )
        raise_for_status(status_code, content, downloading_document=True)
        self._log_info(f"Downloaded document {handle.document_id} to {output_path}")

    async def translate_document(
        self,
        input_path: PathType,
        output_path: PathType,
        source_lang: Optional[str],
        target_lang: str,
        formality: Optional[str] = None,
        glossary: Optional[GlossaryRef] = None,
        filename: Optional[str] = None,
    ) -> DocumentStatus:
        """Upload, wait for and download a document translation.

        Errors after the upload are raised as DocumentTranslationError with the
        handle attached, and any partially written output file is removed.
        """
        if os.path.exists(output_path):
            raise FileExistsError(f"File already exists: {output_path}")

        handle = await self.upload(
            input_path, source_lang, target_lang, formality, glossary, filename
        )

        completed = False
        try:
            status = await self.wait_until_complete(handle)
            await self.download(handle, output_path, status=status)
            completed = True
        except DocumentTranslationError:
            raise
        except Exception as e:
            self._log_error(f"Translation of document {handle.document_id} failed: {e}")
            raise DocumentTranslationError(
                f"Error occurred while translating document: {e}", handle, cause=e
            ) from e
        finally:
            if not completed and os.path.exists(output_path):
                os.remove(output_path)
        return status
