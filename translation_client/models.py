from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class DocumentState(str, Enum):
    queued = "queued"
    translating = "translating"
    done = "done"
    error = "error"


class BackoffConfig(BaseModel):
    initial_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=120.0, gt=0)
    backoff_factor: float = Field(default=1.6, ge=1.0)
    jitter: float = Field(default=0.23, ge=0, lt=1)  # fraction of the first interval


class DocumentPollingConfig(BaseModel):
    min_delay: float = 1.0
    max_delay: float = 60.0
    default_delay: float = 5.0
    timeout: Optional[float] = None


class AppInfo(BaseModel):
    """Name and version of the application using the client, sent in the User-Agent"""

    name: str
    version: str


class TranslatorOptions(BaseModel):
    server_url: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = 10.0  # minimum per-attempt timeout
    max_retries: int = 5
    proxy: Optional[str] = None
    send_platform_info: bool = True
    app_info: Optional[AppInfo] = None
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    polling: DocumentPollingConfig = Field(default_factory=DocumentPollingConfig)


class AttemptSuccess(BaseModel):
    """An HTTP response was received, whatever its status code"""

    kind: Literal["success"] = "success"
    status_code: int
    body: bytes = b""


class ConnectionFailure(BaseModel):
    """No HTTP response was received"""

    kind: Literal["connection_failure"] = "connection_failure"
    retryable: bool
    message: str


RequestAttemptResult = Union[AttemptSuccess, ConnectionFailure]


class DocumentHandle(BaseModel):
    """ID and key of an uploaded document.

    The handle is the only way to reach a translation job once the upload
    call has returned, so callers should persist it (see ``to_json``) until
    the result has been downloaded.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_key: str

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "DocumentHandle":
        return cls.model_validate_json(data)

    def __str__(self) -> str:
        return f"Document ID: {self.document_id}, key: {self.document_key}"


class DocumentStatus(BaseModel):
    document_id: str
    status: DocumentState
    seconds_remaining: Optional[int] = None
    billed_characters: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DocumentState.error

    @property
    def done(self) -> bool:
        return self.status == DocumentState.done

    @property
    def terminal(self) -> bool:
        return self.status in (DocumentState.done, DocumentState.error)


class TextResult(BaseModel):
    text: str
    detected_source_lang: str
    billed_characters: Optional[int] = None

    def __str__(self) -> str:
        return self.text


class UsageDetail(BaseModel):
    count: int
    limit: int

    @property
    def limit_reached(self) -> bool:
        return self.count >= self.limit


class Usage(BaseModel):
    character: Optional[UsageDetail] = None
    document: Optional[UsageDetail] = None
    team_document: Optional[UsageDetail] = None

    @classmethod
    def from_response(cls, data: dict) -> "Usage":
        def detail(prefix: str) -> Optional[UsageDetail]:
            count = data.get(f"{prefix}_count")
            limit = data.get(f"{prefix}_limit")
            if count is None or limit is None:
                return None
            return UsageDetail(count=count, limit=limit)

        return cls(
            character=detail("character"),
            document=detail("document"),
            team_document=detail("team_document"),
        )

    @property
    def any_limit_reached(self) -> bool:
        details = (self.character, self.document, self.team_document)
        return any(d is not None and d.limit_reached for d in details)

    def __str__(self) -> str:
        labels = (
            ("Characters", self.character),
            ("Documents", self.document),
            ("Team documents", self.team_document),
        )
        lines = [f"{label}: {d.count} of {d.limit}" for label, d in labels if d]
        return "Usage this billing period:\n" + "\n".join(lines)


class Language(BaseModel):
    code: str
    name: str
    supports_formality: Optional[bool] = None


class GlossaryInfo(BaseModel):
    glossary_id: str
    name: str
    ready: bool
    source_lang: str
    target_lang: str
    creation_time: datetime
    entry_count: int

    def as_ref(self) -> "ResolvedGlossary":
        return ResolvedGlossary(info=self)


class GlossaryId(BaseModel):
    kind: Literal["id"] = "id"
    glossary_id: str

    def resolve_id(self) -> str:
        return self.glossary_id


class ResolvedGlossary(BaseModel):
    kind: Literal["resolved"] = "resolved"
    info: GlossaryInfo

    def resolve_id(self) -> str:
        return self.info.glossary_id


GlossaryRef = Union[GlossaryId, ResolvedGlossary]
