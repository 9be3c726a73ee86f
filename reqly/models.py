"""Internal data models for reqly.

All models use Pydantic v2. Python attributes are snake_case; the wire format
(request files, JSON output, UI payloads) is lowerCamelCase.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# Wire models accept extra fields: UI payloads carry presentation data
# (proxy, name, createdAt, ...) that the executor does not use.
_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
    extra="ignore",
    coerce_numbers_to_str=True,
)


# =============================================================================
# Request Models
# =============================================================================


class KeyValue(BaseModel):
    """A single header, query parameter, form field or variable.

    Disabled entries and entries with an empty key are inert.
    """

    model_config = _WIRE_CONFIG

    id: str = Field(default="", description="Client-side identifier, unused by the executor")
    key: str = Field(default="", description="Name")
    value: str = Field(default="", description="Value")
    enabled: bool = Field(default=True, description="Whether the entry is applied")

    @property
    def is_active(self) -> bool:
        return self.enabled and self.key != ""


class AuthType(str, Enum):
    """Authentication scheme applied to the outbound request."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "apikey"

    @classmethod
    def _missing_(cls, value: object) -> AuthType | None:
        # Accept "apiKey", "Bearer", ... as spellings of the lowercase values
        if isinstance(value, str):
            lowered = value.lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class AuthConfig(BaseModel):
    """Authentication settings.

    Only the fields relevant to ``type`` are read. A missing required field
    disables auth injection instead of failing the request.
    """

    model_config = _WIRE_CONFIG

    type: AuthType = Field(default=AuthType.NONE, description="Active auth scheme")
    username: str | None = Field(default=None, description="basic: user name")
    password: str | None = Field(default=None, description="basic: password")
    token: str | None = Field(default=None, description="bearer: token")
    api_key: str | None = Field(default=None, description="apikey: key value")
    api_key_header: str | None = Field(default=None, description="apikey: header name")


class BodyType(str, Enum):
    """How the request body is encoded."""

    NONE = "none"
    TEXT = "text"
    JSON = "json"
    FILE = "file"
    FORM_DATA = "form-data"

    @classmethod
    def _missing_(cls, value: object) -> BodyType | None:
        # "formData" / "form_data" are accepted for form-data
        if isinstance(value, str):
            normalized = value.replace("_", "-").lower()
            if normalized == "formdata":
                return cls.FORM_DATA
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class RequestBody(BaseModel):
    """Request payload.

    ``content`` is used by text and json bodies (and by file bodies once an
    upstream reader has filled it in). ``form_data`` is used by form-data.
    """

    model_config = _WIRE_CONFIG

    type: BodyType = Field(default=BodyType.NONE, description="Body encoding")
    content: str | None = Field(default=None, description="Raw body text")
    form_data: list[KeyValue] | None = Field(default=None, description="Multipart text fields")


class RequestConfig(BaseModel):
    """Declarative description of one HTTP request. The only executor input."""

    model_config = _WIRE_CONFIG

    method: str = Field(description="HTTP method token, e.g. GET")
    url: str = Field(description="Target URL; bare host:port and IPs are accepted")
    headers: list[KeyValue] = Field(default_factory=list, description="Explicit request headers")
    params: list[KeyValue] = Field(default_factory=list, description="Query parameters")
    body: RequestBody = Field(default_factory=RequestBody, description="Request payload")
    auth: AuthConfig = Field(default_factory=AuthConfig, description="Authentication")


# =============================================================================
# Response Models
# =============================================================================


class ResponseData(BaseModel):
    """Normalized response. The only executor output.

    Header keys are lowercase and single-valued: when a header repeats, the
    last value wins.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    status: int = Field(ge=0, le=65535, description="HTTP status code")
    status_text: str = Field(description="Canonical reason phrase, 'Unknown' if none")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: str = Field(default="", description="Response body as text")
    time: int = Field(ge=0, description="Elapsed wall-clock time in milliseconds")
    size: int = Field(ge=0, description="Body size in bytes (UTF-8)")


# =============================================================================
# Environment & Runtime Configuration Models
# =============================================================================


class Environment(BaseModel):
    """A named set of {{variable}} substitution values."""

    model_config = _WIRE_CONFIG

    id: str = Field(default="", description="Client-side identifier")
    name: str = Field(default="", description="Display name")
    variables: list[KeyValue] = Field(default_factory=list, description="Variables")


class TransportConfig(BaseModel):
    """Transport settings for the executor.

    The defaults trust every certificate. That is a local-development policy;
    set ``verify_ssl`` (or ``ca_bundle``) when talking to anything else.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout: float = Field(default=60.0, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=False, description="Validate server certificates")
    ca_bundle: str | None = Field(default=None, description="CA bundle path (implies verification)")
    follow_redirects: bool = Field(default=True, description="Follow HTTP redirects")


class VariableCheck(BaseModel):
    """Result of checking {{variable}} references against an environment."""

    model_config = ConfigDict(extra="forbid")

    references: list[str] = Field(default_factory=list, description="Referenced variable names")
    missing: list[str] = Field(default_factory=list, description="References with no enabled value")

    @property
    def is_valid(self) -> bool:
        return not self.missing


# =============================================================================
# Assertion Models
# =============================================================================


class AssertionSubject(str, Enum):
    """The part of the response an assertion inspects."""

    STATUS = "status"
    HEADER = "header"
    BODY = "body"
    JSON = "json"
    RESPONSE_TIME = "responseTime"

    @classmethod
    def _missing_(cls, value: object) -> AssertionSubject | None:
        # "response_time", "RESPONSETIME", ...
        if isinstance(value, str):
            normalized = value.replace("_", "").lower()
            for member in cls:
                if member.value.lower() == normalized:
                    return member
        return None


class AssertionOperator(str, Enum):
    """Comparison applied to the resolved subject."""

    EQUAL = "equal"
    BELOW = "below"
    ABOVE = "above"
    INCLUDE = "include"
    EXISTS = "exists"
    PROPERTY = "property"


_KEYED_SUBJECTS = {AssertionSubject.HEADER, AssertionSubject.JSON}


class Assertion(BaseModel):
    """A declarative check against a ResponseData.

    ``key`` is the header name for header assertions and a JSONPath for json
    assertions (the whole parsed body when omitted).
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid"
    )

    name: str | None = Field(default=None, description="Label shown in results")
    subject: AssertionSubject = Field(description="Response part to inspect")
    key: str | None = Field(default=None, description="Header name or JSONPath")
    op: AssertionOperator = Field(default=AssertionOperator.EQUAL, description="Operator")
    value: Any = Field(default=None, description="Expected value, threshold or substring")

    @model_validator(mode="after")
    def check_operands(self) -> Self:
        if self.subject == AssertionSubject.HEADER and not self.key:
            raise ValueError("header assertions need a key")
        if self.key is not None and self.subject not in _KEYED_SUBJECTS:
            raise ValueError(f"key is not used with {self.subject.value} assertions")

        if self.op in (AssertionOperator.BELOW, AssertionOperator.ABOVE):
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
                raise ValueError(f"{self.op.value} needs a numeric value")
        if self.op in (AssertionOperator.INCLUDE, AssertionOperator.PROPERTY):
            if not isinstance(self.value, str):
                raise ValueError(f"{self.op.value} needs a string value")
        return self

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        parts = [self.subject.value]
        if self.key:
            parts.append(self.key)
        parts.append(self.op.value)
        if self.op != AssertionOperator.EXISTS:
            parts.append(repr(self.value))
        return " ".join(parts)


class AssertionResult(BaseModel):
    """Outcome of one assertion."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str = Field(description="Assertion label")
    passed: bool = Field(description="Whether the assertion held")
    message: str | None = Field(default=None, description="Why it failed (None if passed)")


class RequestFile(BaseModel):
    """Parsed request file: the request plus the checks to run on its response."""

    model_config = ConfigDict(frozen=True)

    request: RequestConfig
    assertions: list[Assertion] = Field(default_factory=list)
