"""Body encoding - RequestBody to httpx request arguments.

Each body type has an encoder producing an EncodedBody. The executor passes
``content`` and ``files`` straight to httpx and sets ``content_type`` only
when the user did not supply a Content-Type header.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Sequence

from reqly.models import BodyType, KeyValue, RequestBody

JSON_CONTENT_TYPE = "application/json"

# httpx multipart field: (name, (filename, value)). filename=None makes it a
# plain text field with no filename or per-part content type.
MultipartField = tuple[str, tuple[None, str]]


@dataclass(frozen=True)
class EncodedBody:
    """Encoded request payload.

    Attributes:
        content: Raw body bytes, or None for no raw body.
        files: Multipart text fields, or None when not multipart.
        content_type: Default Content-Type to add, or None.
    """

    content: bytes | None = None
    files: list[MultipartField] | None = None
    content_type: str | None = None


def has_content_type_header(headers: Sequence[KeyValue]) -> bool:
    """True if an enabled header is named Content-Type (case-insensitive)."""
    return any(h.enabled and h.key.lower() == "content-type" for h in headers)


def _encode_none(body: RequestBody, headers: Sequence[KeyValue]) -> EncodedBody:
    return EncodedBody()


def _encode_text(body: RequestBody, headers: Sequence[KeyValue]) -> EncodedBody:
    if body.content is None:
        return EncodedBody()
    return EncodedBody(content=body.content.encode("utf-8"))


def _encode_json(body: RequestBody, headers: Sequence[KeyValue]) -> EncodedBody:
    """Send content verbatim. It is not parsed, so malformed JSON goes out as typed."""
    if body.content is None:
        return EncodedBody()
    content_type = None if has_content_type_header(headers) else JSON_CONTENT_TYPE
    return EncodedBody(content=body.content.encode("utf-8"), content_type=content_type)


def _encode_form_data(body: RequestBody, headers: Sequence[KeyValue]) -> EncodedBody:
    if body.form_data is None:
        return EncodedBody()
    fields: list[MultipartField] = [
        (field.key, (None, field.value)) for field in body.form_data if field.is_active
    ]
    if fields:
        return EncodedBody(files=fields)

    # httpx drops an empty files list, so write the closing delimiter ourselves
    boundary = os.urandom(16).hex()
    content_type = (
        None if has_content_type_header(headers) else f"multipart/form-data; boundary={boundary}"
    )
    return EncodedBody(content=f"--{boundary}--\r\n".encode("ascii"), content_type=content_type)


def _encode_file(body: RequestBody, headers: Sequence[KeyValue]) -> EncodedBody:
    # File bodies are read by the caller; nothing is encoded here.
    return EncodedBody()


BODY_ENCODERS: dict[BodyType, Callable[[RequestBody, Sequence[KeyValue]], EncodedBody]] = {
    BodyType.NONE: _encode_none,
    BodyType.TEXT: _encode_text,
    BodyType.JSON: _encode_json,
    BodyType.FORM_DATA: _encode_form_data,
    BodyType.FILE: _encode_file,
}


def encode_body(body: RequestBody, headers: Sequence[KeyValue] = ()) -> EncodedBody:
    """Encode ``body`` according to its type.

    Args:
        body: The request body description.
        headers: The request's explicit headers, consulted for Content-Type.

    Returns:
        EncodedBody ready to hand to httpx.
    """
    return BODY_ENCODERS[body.type](body, headers)
