import asyncio
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web
from loguru import logger

LANGUAGES = [
    {"language": "DE", "name": "German", "supports_formality": True},
    {"language": "EN", "name": "English"},
    {"language": "EN-GB", "name": "English (British)", "supports_formality": False},
    {"language": "EN-US", "name": "English (American)", "supports_formality": False},
    {"language": "FR", "name": "French", "supports_formality": True},
    {"language": "JA", "name": "Japanese", "supports_formality": True},
]

KNOWN_TRANSLATIONS = {("proton beam", "DE"): "Protonenstrahl"}


def fake_translate(text: str, target_lang: str) -> str:
    return KNOWN_TRANSLATIONS.get((text, target_lang), f"[{target_lang}] {text}")


@dataclass
class MockDocument:
    key: str
    content: bytes
    source_lang: Optional[str]
    target_lang: str
    fail: bool
    created: float = field(default_factory=time.monotonic)


class MockTranslationServer:
    """In-process stand-in for the translation API with scriptable faults.

    Fault knobs are plain attributes and can be changed while the server runs:
    ``fail_429_count`` and ``server_error_count`` answer the next requests with
    429/503, ``no_response_count`` delays the next responses by
    ``no_response_delay`` seconds, and the ``doc_*`` settings control how long
    documents stay queued/translating and whether they fail.
    """

    def __init__(
        self,
        auth_key: str = "mock-auth-key",
        doc_queue_time: float = 0.0,
        doc_translate_time: float = 0.0,
        doc_error_rate: float = 0.0,
        character_limit: int = 1_000_000,
        document_limit: int = 100,
    ):
        self.auth_key = auth_key
        self.doc_queue_time = doc_queue_time
        self.doc_translate_time = doc_translate_time
        self.doc_error_rate = doc_error_rate
        self.character_limit = character_limit
        self.document_limit = document_limit

        self.fail_429_count = 0
        self.server_error_count = 0
        self.no_response_count = 0
        self.no_response_delay = 0.5

        self.request_count = 0
        self.request_log: list[tuple[str, str]] = []
        self.character_count = 0
        self.document_count = 0
        self.documents: dict[str, MockDocument] = {}
        self.glossaries: dict[str, dict] = {}
        self.last_headers: dict[str, str] = {}

        self.app = web.Application(middlewares=[self.fault_middleware])
        self.app.router.add_post("/v2/translate", self.handle_translate)
        self.app.router.add_route("*", "/v2/usage", self.handle_usage)
        self.app.router.add_get("/v2/languages", self.handle_languages)
        self.app.router.add_post("/v2/glossaries", self.handle_create_glossary)
        self.app.router.add_get("/v2/glossaries", self.handle_list_glossaries)
        self.app.router.add_get("/v2/glossaries/{glossary_id}", self.handle_get_glossary)
        self.app.router.add_delete(
            "/v2/glossaries/{glossary_id}", self.handle_delete_glossary
        )
        self.app.router.add_get(
            "/v2/glossaries/{glossary_id}/entries", self.handle_glossary_entries
        )
        self.app.router.add_post("/v2/document", self.handle_upload_document)
        self.app.router.add_post("/v2/document/{document_id}", self.handle_document_status)
        self.app.router.add_post(
            "/v2/document/{document_id}/result", self.handle_document_result
        )
        self.logger = logger
        self._runner: Optional[web.AppRunner] = None

    @property
    def status_request_count(self) -> int:
        return sum(
            1
            for method, path in self.request_log
            if path.startswith("/v2/document/") and not path.endswith("/result")
        )

    @web.middleware
    async def fault_middleware(self, request: web.Request, handler):
        self.request_count += 1
        self.request_log.append((request.method, request.path))
        self.last_headers = dict(request.headers)

        if self.no_response_count > 0:
            self.no_response_count -= 1
            self.logger.info(f"Delaying response by {self.no_response_delay}s")
            await asyncio.sleep(self.no_response_delay)

        if self.fail_429_count > 0:
            self.fail_429_count -= 1
            self.logger.info("Returning 429 Too Many Requests")
            return web.json_response({"message": "Too many requests"}, status=429)

        if self.server_error_count > 0:
            self.server_error_count -= 1
            self.logger.info("Returning 503 Service Unavailable")
            return web.json_response({"message": "Service unavailable"}, status=503)

        if request.headers.get("Authorization") != f"DeepL-Auth-Key {self.auth_key}":
            return web.json_response({"message": "Invalid auth key"}, status=403)

        return await handler(request)

    @staticmethod
    async def _params(request: web.Request):
        if request.method in ("GET", "DELETE"):
            return request.query
        return await request.post()

    async def handle_translate(self, request: web.Request) -> web.Response:
        params = await self._params(request)
        texts = params.getall("text", [])
        target_lang = params.get("target_lang", "").upper()
        if not texts or not target_lang:
            return web.json_response({"message": "Missing text or target_lang"}, status=400)

        characters = sum(len(text) for text in texts)
        if self.character_count + characters > self.character_limit:
            return web.json_response({"message": "Quota exceeded"}, status=456)
        self.character_count += characters

        source_lang = params.get("source_lang", "EN").upper()
        return web.json_response(
            {
                "translations": [
                    {
                        "detected_source_language": source_lang,
                        "text": fake_translate(text, target_lang),
                        "billed_characters": len(text),
                    }
                    for text in texts
                ]
            }
        )

    async def handle_usage(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "character_count": self.character_count,
                "character_limit": self.character_limit,
                "document_count": self.document_count,
                "document_limit": self.document_limit,
            }
        )

    async def handle_languages(self, request: web.Request) -> web.Response:
        if request.query.get("type") == "target":
            return web.json_response([lang for lang in LANGUAGES if lang["language"] != "EN"])
        return web.json_response(
            [
                {"language": lang["language"], "name": lang["name"]}
                for lang in LANGUAGES
                if "-" not in lang["language"]
            ]
        )

    def _glossary_info(self, glossary: dict) -> dict:
        return {key: value for key, value in glossary.items() if key != "entries"}

    async def handle_create_glossary(self, request: web.Request) -> web.Response:
        params = await self._params(request)
        entries_format = params.get("entries_format", "tsv")
        separator = "\t" if entries_format == "tsv" else ","
        entries = {}
        for line in params.get("entries", "").splitlines():
            if line.strip():
                source, _, target = line.partition(separator)
                entries[source.strip()] = target.strip()
        if not params.get("name") or not entries:
            return web.json_response({"message": "Invalid glossary"}, status=400)

        glossary_id = str(uuid.uuid4())
        self.glossaries[glossary_id] = {
            "glossary_id": glossary_id,
            "name": params["name"],
            "ready": True,
            "source_lang": params["source_lang"].lower(),
            "target_lang": params["target_lang"].lower(),
            "creation_time": datetime.now(timezone.utc).isoformat(),
            "entry_count": len(entries),
            "entries": entries,
        }
        return web.json_response(self._glossary_info(self.glossaries[glossary_id]), status=201)

    async def handle_list_glossaries(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"glossaries": [self._glossary_info(g) for g in self.glossaries.values()]}
        )

    def _find_glossary(self, request: web.Request) -> Optional[dict]:
        return self.glossaries.get(request.match_info["glossary_id"])

    async def handle_get_glossary(self, request: web.Request) -> web.Response:
        glossary = self._find_glossary(request)
        if glossary is None:
            return web.json_response({"message": "Glossary not found"}, status=404)
        return web.json_response(self._glossary_info(glossary))

    async def handle_delete_glossary(self, request: web.Request) -> web.Response:
        glossary = self._find_glossary(request)
        if glossary is None:
            return web.json_response({"message": "Glossary not found"}, status=404)
        del self.glossaries[glossary["glossary_id"]]
        return web.Response(status=204)

    async def handle_glossary_entries(self, request: web.Request) -> web.Response:
        glossary = self._find_glossary(request)
        if glossary is None:
            return web.json_response({"message": "Glossary not found"}, status=404)
        tsv = "\n".join(f"{s}\t{t}" for s, t in glossary["entries"].items())
        return web.Response(text=tsv, content_type="text/tab-separated-values")

    async def handle_upload_document(self, request: web.Request) -> web.Response:
        params = await request.post()
        upload = params.get("file")
        target_lang = params.get("target_lang", "").upper()
        if not isinstance(upload, web.FileField) or not target_lang:
            return web.json_response({"message": "Missing file or target_lang"}, status=400)
        if self.document_count >= self.document_limit:
            return web.json_response({"message": "Quota exceeded"}, status=456)

        document_id = uuid.uuid4().hex.upper()
        source_lang = params.get("source_lang")
        self.documents[document_id] = MockDocument(
            key=uuid.uuid4().hex.upper() * 2,
            content=upload.file.read(),
            source_lang=source_lang.upper() if source_lang else None,
            target_lang=target_lang,
            fail=random.random() < self.doc_error_rate,
        )
        self.document_count += 1
        self.logger.info(f"Document {document_id} uploaded ({upload.filename})")
        return web.json_response(
            {"document_id": document_id, "document_key": self.documents[document_id].key}
        )

    async def _find_document(self, request: web.Request):
        params = await request.post()
        document = self.documents.get(request.match_info["document_id"])
        if document is None:
            return None, web.json_response({"message": "Document not found"}, status=404)
        if params.get("document_key") != document.key:
            return None, web.json_response({"message": "Invalid document key"}, status=403)
        return document, None

    def _document_state(self, document: MockDocument) -> dict:
        elapsed = time.monotonic() - document.created
        if elapsed < self.doc_queue_time:
            return {"status": "queued"}
        remaining = self.doc_queue_time + self.doc_translate_time - elapsed
        if remaining > 0:
            return {"status": "translating", "seconds_remaining": int(remaining)}
        if document.fail or document.source_lang == document.target_lang:
            return {
                "status": "error",
                "error_message": "Source and target language are equal"
                if document.source_lang == document.target_lang
                else "Translation failed",
            }
        return {"status": "done", "billed_characters": len(document.content)}

    async def handle_document_status(self, request: web.Request) -> web.Response:
        document, error = await self._find_document(request)
        if error is not None:
            return error
        state = self._document_state(document)
        self.logger.info(f"Returning {state['status']} status")
        return web.json_response(
            {"document_id": request.match_info["document_id"], **state}
        )

    async def handle_document_result(self, request: web.Request) -> web.Response:
        document, error = await self._find_document(request)
        if error is not None:
            return error
        if self._document_state(document)["status"] != "done":
            return web.json_response({"message": "Document not ready"}, status=503)

        del self.documents[request.match_info["document_id"]]
        translated = fake_translate(document.content.decode("utf-8"), document.target_lang)
        return web.Response(
            body=translated.encode("utf-8"), content_type="application/octet-stream"
        )

    async def start(self, port: int = 0) -> int:
        """Start serving on 127.0.0.1 and return the bound port"""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", port)
        await site.start()
        port = self._runner.addresses[0][1]
        self.logger.info(f"Server started on port {port}")
        return port

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
