import platform
from typing import Any, Iterable, Optional, Union

from loguru import logger
from pydantic import ValidationError

from translation_client.documents import DocumentTranslator, StatusCallback
from translation_client.exceptions import (
    InvalidContentError,
    InvalidParameterError,
    raise_for_status,
)
from translation_client.glossaries import entries_from_tsv, entries_to_tsv
from translation_client.http_client import HttpClient, parse_json_body, parse_model
from translation_client.languages import (
    build_translation_params,
    standardize_language_code,
)
from translation_client.models import (
    DocumentHandle,
    DocumentStatus,
    GlossaryInfo,
    GlossaryRef,
    Language,
    TextResult,
    TranslatorOptions,
    Usage,
)
from translation_client.transport import PathType

VERSION = "0.1.0"

DEFAULT_SERVER_URL = "https://api.deepl.com"
DEFAULT_SERVER_URL_FREE = "https://api-free.deepl.com"


def is_free_account_key(auth_key: str) -> bool:
    return auth_key.endswith(":fx")


def _join_tags(tags: Union[str, Iterable[str]]) -> str:
    if isinstance(tags, str):
        return tags
    return ",".join(tags)


class TranslationClient:
    """Client for the translation API.

    Constructing a client does not connect to the server. Use it as an async
    context manager, or call ``close()``, to release the HTTP session.
    """

    def __init__(
        self,
        auth_key: str,
        options: Optional[TranslatorOptions] = None,
        on_status_change: Optional[StatusCallback] = None,
        logger: Any = logger,
    ):
        """``logger`` is any object with ``info``/``debug`` methods; pass None to disable logging"""
        if not auth_key:
            raise InvalidParameterError("auth_key must not be empty")

        self.options = options or TranslatorOptions()

        server_url = self.options.server_url
        if server_url is None:
            server_url = (
                DEFAULT_SERVER_URL_FREE
                if is_free_account_key(auth_key)
                else DEFAULT_SERVER_URL
            )
        elif not server_url:
            raise InvalidParameterError("server_url, if given, must not be empty")

        headers = {
            "Authorization": f"DeepL-Auth-Key {auth_key}",
            "User-Agent": self._user_agent(),
            **self.options.headers,
        }

        self._client = HttpClient(
            server_url,
            headers=headers,
            min_timeout=self.options.timeout,
            max_retries=self.options.max_retries,
            backoff=self.options.backoff,
            proxy=self.options.proxy,
            logger=logger,
        )
        self.documents = DocumentTranslator(
            self._client, self.options.polling, on_status_change=on_status_change
        )

    def _user_agent(self) -> str:
        user_agent = f"translation-client/{VERSION}"
        if self.options.send_platform_info:
            user_agent += (
                f" ({platform.system()} {platform.release()}) "
                f"python/{platform.python_version()}"
            )
        if self.options.app_info is not None:
            app_info = self.options.app_info
            user_agent += f" {app_info.name}/{app_info.version}"
        return user_agent

    @property
    def server_url(self) -> str:
        return self._client.server_url

    async def __aenter__(self) -> "TranslationClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    async def translate_text(
        self,
        text: Union[str, Iterable[str]],
        source_lang: Optional[str],
        target_lang: str,
        formality: Optional[str] = None,
        glossary: Optional[GlossaryRef] = None,
        split_sentences: Optional[str] = None,
        preserve_formatting: bool = False,
        tag_handling: Optional[str] = None,
        outline_detection: bool = True,
        non_splitting_tags: Optional[Union[str, Iterable[str]]] = None,
        splitting_tags: Optional[Union[str, Iterable[str]]] = None,
        ignore_tags: Optional[Union[str, Iterable[str]]] = None,
        context: Optional[str] = None,
    ) -> Union[TextResult, list[TextResult]]:
        """Translate one text, or a list of texts, into the target language.

        Returns a single TextResult for a string and a list for an iterable.
        """
        single = isinstance(text, str)
        texts = [text] if single else list(text)
        if not texts or any(not isinstance(t, str) or not t for t in texts):
            raise InvalidParameterError(
                "text must be a non-empty string or a list of non-empty strings"
            )

        params = build_translation_params(source_lang, target_lang, formality, glossary)
        params["text"] = texts
        if split_sentences is not None:
            split = split_sentences.lower()
            params["split_sentences"] = {"on": "1", "default": "1", "off": "0"}.get(
                split, split
            )
        if preserve_formatting:
            params["preserve_formatting"] = "1"
        if tag_handling is not None:
            params["tag_handling"] = tag_handling
        if not outline_detection:
            params["outline_detection"] = "0"
        if non_splitting_tags is not None:
            params["non_splitting_tags"] = _join_tags(non_splitting_tags)
        if splitting_tags is not None:
            params["splitting_tags"] = _join_tags(splitting_tags)
        if ignore_tags is not None:
            params["ignore_tags"] = _join_tags(ignore_tags)
        if context is not None:
            params["context"] = context

        status_code, content = await self._client.send_request_with_backoff(
            "POST", "/v2/translate", params=params
        )
        raise_for_status(status_code, content)

        data = parse_json_body(content)
        try:
            results = [
                TextResult(
                    text=translation["text"],
                    detected_source_lang=standardize_language_code(
                        translation["detected_source_language"]
                    ),
                    billed_characters=translation.get("billed_characters"),
                )
                for translation in data["translations"]
            ]
        except (KeyError, TypeError, ValidationError) as e:
            raise InvalidContentError(f"Unexpected translation response: {e}") from e
        return results[0] if single else results

    async def get_usage(self) -> Usage:
        status_code, content = await self._client.send_request_with_backoff(
            "GET", "/v2/usage"
        )
        raise_for_status(status_code, content)
        return Usage.from_response(parse_json_body(content))

    async def _get_languages(self, target: bool) -> list[Language]:
        status_code, content = await self._client.send_request_with_backoff(
            "GET", "/v2/languages", params={"type": "target" if target else None}
        )
        raise_for_status(status_code, content)

        data = parse_json_body(content)
        try:
            return [
                Language(
                    code=standardize_language_code(lang["language"]),
                    name=lang["name"],
                    supports_formality=lang.get("supports_formality"),
                )
                for lang in data
            ]
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise InvalidContentError(f"Unexpected languages response: {e}") from e

    async def get_source_languages(self) -> list[Language]:
        return await self._get_languages(target=False)

    async def get_target_languages(self) -> list[Language]:
        return await self._get_languages(target=True)

    async def create_glossary(
        self, name: str, source_lang: str, target_lang: str, entries: dict[str, str]
    ) -> GlossaryInfo:
        """Create a glossary from a source -> target term mapping"""
        return await self._create_glossary(
            name, source_lang, target_lang, "tsv", entries_to_tsv(entries)
        )

    async def create_glossary_from_csv(
        self, name: str, source_lang: str, target_lang: str, csv_data: Union[str, bytes]
    ) -> GlossaryInfo:
        if isinstance(csv_data, bytes):
            csv_data = csv_data.decode("utf-8")
        return await self._create_glossary(
            name, source_lang, target_lang, "csv", csv_data
        )

    async def _create_glossary(
        self,
        name: str,
        source_lang: str,
        target_lang: str,
        entries_format: str,
        entries: str,
    ) -> GlossaryInfo:
        if not name:
            raise InvalidParameterError("glossary name must not be empty")
        params = {
            "name": name,
            "source_lang": standardize_language_code(source_lang),
            "target_lang": standardize_language_code(target_lang),
            "entries_format": entries_format,
            "entries": entries,
        }
        status_code, content = await self._client.send_request_with_backoff(
            "POST", "/v2/glossaries", params=params
        )
        raise_for_status(status_code, content, glossary=True)
        return parse_model(GlossaryInfo, parse_json_body(content))

    async def get_glossary(self, glossary: GlossaryRef) -> GlossaryInfo:
        status_code, content = await self._client.send_request_with_backoff(
            "GET", f"/v2/glossaries/{glossary.resolve_id()}"
        )
        raise_for_status(status_code, content, glossary=True)
        return parse_model(GlossaryInfo, parse_json_body(content))

    async def list_glossaries(self) -> list[GlossaryInfo]:
        status_code, content = await self._client.send_request_with_backoff(
            "GET", "/v2/glossaries"
        )
        raise_for_status(status_code, content, glossary=True)
        data = parse_json_body(content)
        if not isinstance(data, dict):
            raise InvalidContentError("Unexpected glossary list response")
        return [parse_model(GlossaryInfo, item) for item in data.get("glossaries", [])]

    async def get_glossary_entries(self, glossary: GlossaryRef) -> dict[str, str]:
        status_code, content = await self._client.send_request_with_backoff(
            "GET",
            f"/v2/glossaries/{glossary.resolve_id()}/entries",
            headers={"Accept": "text/tab-separated-values"},
        )
        raise_for_status(status_code, content, glossary=True)
        return entries_from_tsv(content.decode("utf-8"))

    async def delete_glossary(self, glossary: GlossaryRef) -> None:
        status_code, content = await self._client.send_request_with_backoff(
            "DELETE", f"/v2/glossaries/{glossary.resolve_id()}"
        )
        raise_for_status(status_code, content, glossary=True)

    async def upload_document(
        self,
        input_path: PathType,
        source_lang: Optional[str],
        target_lang: str,
        formality: Optional[str] = None,
        glossary: Optional[GlossaryRef] = None,
        filename: Optional[str] = None,
    ) -> DocumentHandle:
        return await self.documents.upload(
            input_path, source_lang, target_lang, formality, glossary, filename
        )

    async def get_document_status(self, handle: DocumentHandle) -> DocumentStatus:
        return await self.documents.get_status(handle)

    async def wait_until_document_translation_complete(
        self, handle: DocumentHandle
    ) -> DocumentStatus:
        return await self.documents.wait_until_complete(handle)

    async def download_document(
        self,
        handle: DocumentHandle,
        output_path: PathType,
        status: Optional[DocumentStatus] = None,
    ) -> None:
        await self.documents.download(handle, output_path, status=status)

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
        """Translate a document file end to end, writing the result to output_path"""
        return await self.documents.translate_document(
            input_path,
            output_path,
            source_lang,
            target_lang,
            formality,
            glossary,
            filename,
        )
