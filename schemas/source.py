"""
Pydantic schemas for source descriptors with validation.

A source descriptor is the declarative description of one ingestion
source: its protocol, its columns, how records are written and the
optional tasks that run before and after the chunk loop. Descriptors are
validated once when loaded and are immutable afterwards.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from core.exceptions import ConfigurationError


class _Descriptor(BaseModel):
    """Shared model configuration: frozen, unknown keys rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")


def _upper(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


# ============================================================================
# Enums
# ============================================================================

class SourceType(str, Enum):
    """Protocol a source is read with."""
    FILE = "FILE"
    QUERY = "QUERY"
    HTTP = "HTTP"
    SOAP = "SOAP"


SOURCE_TYPE_ALIASES = {"CSV": "FILE", "SQL": "QUERY", "REST": "HTTP"}


class ColumnType(str, Enum):
    """Declared type of a column, DOUBLE is an alias of DECIMAL."""
    STRING = "STRING"
    INTEGER = "INTEGER"
    LONG = "LONG"
    DECIMAL = "DECIMAL"
    DOUBLE = "DOUBLE"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    DATETIME = "DATETIME"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


class HttpAuthType(str, Enum):
    NONE = "NONE"
    API_KEY = "API_KEY"
    BEARER = "BEARER"
    OAUTH2_CLIENT_CREDENTIALS = "OAUTH2_CLIENT_CREDENTIALS"


class PaginationStrategy(str, Enum):
    NONE = "NONE"
    PAGE_SIZE = "PAGE_SIZE"
    OFFSET_LIMIT = "OFFSET_LIMIT"
    CURSOR = "CURSOR"
    LINK_HEADER = "LINK_HEADER"


class SoapAuthType(str, Enum):
    NONE = "NONE"
    BASIC = "BASIC"
    WS_SECURITY = "WS_SECURITY"
    CUSTOM_HEADER = "CUSTOM_HEADER"


class PasswordType(str, Enum):
    TEXT = "PasswordText"
    DIGEST = "PasswordDigest"


class CollaboratorType(str, Enum):
    """How a writer or task is carried out: a SQL file or a named collaborator."""
    SQL = "SQL"
    DELEGATE = "DELEGATE"


class ErrorPolicy(str, Enum):
    FAIL = "FAIL"
    SKIP = "SKIP"


# ============================================================================
# Columns
# ============================================================================

class ColumnDescriptor(_Descriptor):
    """
    One output field of a record.

    json_path applies to HTTP sources, xpath to SOAP sources. Other
    readers map columns by name (QUERY) or by position (FILE).
    """

    name: str
    type: ColumnType = ColumnType.STRING
    format: Optional[str] = None
    json_path: Optional[str] = None
    xpath: Optional[str] = None
    required: bool = False
    default_value: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Column name is required")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _upper(v)

    @property
    def effective_type(self) -> ColumnType:
        """DOUBLE and LONG collapse onto their canonical types."""
        if self.type == ColumnType.DOUBLE:
            return ColumnType.DECIMAL
        if self.type == ColumnType.LONG:
            return ColumnType.INTEGER
        return self.type


# ============================================================================
# Protocol sub-configurations
# ============================================================================

class FileConfig(_Descriptor):
    """Delimited file source."""

    path: str = Field(..., min_length=1)
    delimiter: str = Field(";", min_length=1)
    skip_header: bool = True
    encoding: str = "utf-8"


class QueryConfig(_Descriptor):
    """Relational query source: a statement file streamed with a fetch size."""

    sql_directory: str = Field(..., min_length=1)
    sql_file: str = Field(..., min_length=1)
    fetch_size: int = Field(1000, gt=0)
    data_source: Optional[str] = None


class HttpAuthConfig(_Descriptor):
    type: HttpAuthType = HttpAuthType.NONE
    api_key: Optional[str] = None
    header_name: str = "X-Api-Key"
    bearer_token: Optional[str] = None
    token_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scope: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _upper(v)

    @model_validator(mode="after")
    def check_credentials(self) -> "HttpAuthConfig":
        if self.type == HttpAuthType.API_KEY and _blank(self.api_key):
            raise ValueError("auth.api_key is required when type=API_KEY")
        if self.type == HttpAuthType.BEARER and _blank(self.bearer_token):
            raise ValueError("auth.bearer_token is required when type=BEARER")
        if self.type == HttpAuthType.OAUTH2_CLIENT_CREDENTIALS:
            for field in ("token_url", "client_id", "client_secret"):
                if _blank(getattr(self, field)):
                    raise ValueError(
                        f"auth.{field} is required when type=OAUTH2_CLIENT_CREDENTIALS"
                    )
        return self


class PaginationConfig(_Descriptor):
    strategy: PaginationStrategy = PaginationStrategy.NONE
    page_param: str = "page"
    size_param: str = "size"
    page_size: int = Field(100, gt=0)
    offset_param: str = "offset"
    limit_param: str = "limit"
    cursor_path: Optional[str] = None
    cursor_param: str = "cursor"
    total_path: Optional[str] = None

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v):
        return _upper(v)

    @model_validator(mode="after")
    def check_strategy_params(self) -> "PaginationConfig":
        required = {
            PaginationStrategy.PAGE_SIZE: ("page_param", "size_param"),
            PaginationStrategy.OFFSET_LIMIT: ("offset_param", "limit_param"),
            PaginationStrategy.CURSOR: ("cursor_path", "cursor_param"),
        }
        for field in required.get(self.strategy, ()):
            if _blank(getattr(self, field)):
                raise ValueError(
                    f"pagination.{field} is required when strategy={self.strategy.value}"
                )
        return self


class RetryConfig(_Descriptor):
    max_retries: int = Field(3, ge=0)
    retry_delay: float = Field(2.0, ge=0)
    retry_on_http_codes: List[int] = Field(default_factory=lambda: [429, 503, 504])


class HttpConfig(_Descriptor):
    """Paginated JSON HTTP source. Templates may hold :bind and ${ENV} placeholders."""

    url: str = Field(..., min_length=1)
    method: HttpMethod = HttpMethod.GET
    query_params: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    auth: HttpAuthConfig = Field(default_factory=HttpAuthConfig)
    data_path: str = Field("$", min_length=1)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        return _upper(v)


class SoapAuthConfig(_Descriptor):
    type: SoapAuthType = SoapAuthType.NONE
    username: Optional[str] = None
    password: Optional[str] = None
    password_type: PasswordType = PasswordType.TEXT
    header_name: Optional[str] = None
    header_value: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _upper(v)

    @model_validator(mode="after")
    def check_credentials(self) -> "SoapAuthConfig":
        if self.type in (SoapAuthType.BASIC, SoapAuthType.WS_SECURITY):
            for field in ("username", "password"):
                if _blank(getattr(self, field)):
                    raise ValueError(f"auth.{field} is required when type={self.type.value}")
        if self.type == SoapAuthType.CUSTOM_HEADER:
            for field in ("header_name", "header_value"):
                if _blank(getattr(self, field)):
                    raise ValueError(f"auth.{field} is required when type=CUSTOM_HEADER")
        return self


ENVELOPE_MARKERS = ("<soapenv:Envelope", "<soap:Envelope", "<SOAP-ENV:Envelope")


class SoapConfig(_Descriptor):
    """Single-call SOAP source."""

    endpoint: str = Field(..., min_length=1)
    soap_action: Optional[str] = None
    soap_version: str = "1.1"
    wsdl: Optional[str] = None
    request_template: str = Field(..., min_length=1)
    request_params: Dict[str, str] = Field(default_factory=dict)
    auth: SoapAuthConfig = Field(default_factory=SoapAuthConfig)
    data_path: str = Field(..., min_length=1)
    namespace_aware: bool = True
    connection_timeout: float = Field(30.0, gt=0)
    read_timeout: float = Field(60.0, gt=0)

    @field_validator("soap_version", mode="before")
    @classmethod
    def version_as_text(cls, v):
        return str(v).strip() if v is not None else v

    @model_validator(mode="after")
    def check_envelope(self) -> "SoapConfig":
        if not self.endpoint.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must start with http:// or https://, got: {self.endpoint}")
        if self.soap_version not in ("1.1", "1.2"):
            raise ValueError(f"soap_version must be '1.1' or '1.2', got: {self.soap_version}")
        if self.soap_version == "1.1" and _blank(self.soap_action):
            raise ValueError("soap_action is required for SOAP 1.1")
        if not any(marker in self.request_template for marker in ENVELOPE_MARKERS):
            raise ValueError(
                "request_template must be a SOAP envelope "
                "(missing <soapenv:Envelope>, <soap:Envelope> or <SOAP-ENV:Envelope>)"
            )
        return self


# ============================================================================
# Writer and tasks
# ============================================================================

def _normalize_collaborator_type(v):
    v = _upper(v)
    return "DELEGATE" if v == "JAVA" else v


class WriterDescriptor(_Descriptor):
    """
    How records are written.

    SQL runs one parameterized statement per record in a batch, DELEGATE
    hands the chunk to a named collaborator.
    """

    type: CollaboratorType
    sql_directory: Optional[str] = None
    sql_file: Optional[str] = None
    name: Optional[str] = None
    data_source: Optional[str] = None
    on_error: ErrorPolicy = ErrorPolicy.FAIL
    skip_limit: int = 10

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _normalize_collaborator_type(v)

    @field_validator("on_error", mode="before")
    @classmethod
    def normalize_on_error(cls, v):
        return _upper(v)

    @model_validator(mode="after")
    def check_target(self) -> "WriterDescriptor":
        if self.type == CollaboratorType.SQL:
            for field in ("sql_directory", "sql_file"):
                if _blank(getattr(self, field)):
                    raise ValueError(f"writer.{field} is required when type=SQL")
        elif _blank(self.name):
            raise ValueError("writer.name is required when type=DELEGATE")
        if self.on_error == ErrorPolicy.SKIP and self.skip_limit <= 0:
            raise ValueError("writer.skip_limit must be > 0 when on_error=SKIP")
        return self

    @property
    def skips_on_error(self) -> bool:
        return self.on_error == ErrorPolicy.SKIP


class TaskDescriptor(_Descriptor):
    """Pre/post processing step. Disabled unless explicitly enabled."""

    enabled: bool = False
    type: Optional[CollaboratorType] = None
    sql_directory: Optional[str] = None
    sql_file: Optional[str] = None
    name: Optional[str] = None
    data_source: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _normalize_collaborator_type(v)

    @model_validator(mode="after")
    def check_target(self) -> "TaskDescriptor":
        if not self.enabled:
            return self
        if self.type is None:
            raise ValueError("type is required (SQL or DELEGATE)")
        if self.type == CollaboratorType.SQL:
            for field in ("sql_directory", "sql_file"):
                if _blank(getattr(self, field)):
                    raise ValueError(f"{field} is required when type=SQL")
        elif _blank(self.name):
            raise ValueError("name is required when type=DELEGATE")
        return self


# ============================================================================
# Source descriptor
# ============================================================================

_PROTOCOL_FIELDS = {
    SourceType.FILE: "file",
    SourceType.QUERY: "query",
    SourceType.HTTP: "http",
    SourceType.SOAP: "soap",
}


class SourceDescriptor(_Descriptor):
    """
    Validated configuration of one source.

    Ensures:
    - Exactly one protocol sub-config is present and it matches the type
    - Chunk size is positive
    - FILE sources declare their columns (mapping is positional)
    """

    name: str
    type: SourceType
    chunk_size: int = 1000
    columns: List[ColumnDescriptor] = Field(default_factory=list)
    file: Optional[FileConfig] = None
    query: Optional[QueryConfig] = None
    http: Optional[HttpConfig] = None
    soap: Optional[SoapConfig] = None
    writer: Optional[WriterDescriptor] = None
    preprocessing: TaskDescriptor = Field(default_factory=TaskDescriptor)
    postprocessing: TaskDescriptor = Field(default_factory=TaskDescriptor)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Source name is required")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        v = _upper(v)
        return SOURCE_TYPE_ALIASES.get(v, v)

    @model_validator(mode="after")
    def check_protocol(self) -> "SourceDescriptor":
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive for source: {self.name}")

        expected = _PROTOCOL_FIELDS[self.type]
        if getattr(self, expected) is None:
            raise ValueError(
                f"{expected} configuration is required for {self.type.value} source: {self.name}"
            )
        extra = [
            field for kind, field in _PROTOCOL_FIELDS.items()
            if kind != self.type and getattr(self, field) is not None
        ]
        if extra:
            raise ValueError(
                f"{', '.join(extra)} configuration not allowed for "
                f"{self.type.value} source: {self.name}"
            )

        if self.type == SourceType.FILE and not self.columns:
            raise ValueError(f"columns configuration is required for FILE source: {self.name}")
        return self

    @property
    def protocol_config(self):
        return getattr(self, _PROTOCOL_FIELDS[self.type])

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


def _format_errors(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return messages


def parse_source_descriptor(data: Mapping[str, Any], source_name: Optional[str] = None) -> SourceDescriptor:
    """
    Validate raw configuration into a SourceDescriptor.

    Args:
        data: Parsed YAML/dict configuration
        source_name: Name used in error context when data has none

    Returns:
        Immutable, validated descriptor

    Raises:
        ConfigurationError: Listing every failing field path
    """
    try:
        return SourceDescriptor.model_validate(dict(data))
    except ValidationError as e:
        messages = _format_errors(e)
        name = data.get("name") if isinstance(data, Mapping) else None
        raise ConfigurationError(
            f"Invalid source configuration: {'; '.join(messages)}",
            context={
                "source_name": name or source_name,
                "fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()],
            },
            original_exception=e
        ) from e
