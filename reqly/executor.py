"""Executor - Sends a RequestConfig and captures the response as ResponseData.

Pipeline (one pass, no state kept between calls):
    URL normalization -> query params -> method check -> body encoding ->
    headers (auth, explicit, content-type default) -> send -> normalize.

Usage:
    response = execute_http_request(request_config)

Or, to reuse one client or inject a transport:
    with Executor(TransportConfig(timeout=5)) as executor:
        response = executor.execute(request_config)
"""

from __future__ import annotations

import codecs
import re
import ssl
import time
from typing import Any, Sequence

import httpx

from reqly.auth import auth_headers
from reqly.body import EncodedBody, encode_body
from reqly.errors import (
    ClientBuildError,
    InvalidMethodError,
    NetworkError,
    RequestFailedError,
    RequestTimeoutError,
)
from reqly.models import AuthConfig, KeyValue, RequestConfig, ResponseData, TransportConfig
from reqly.url_builder import build_url

# RFC 7230 token characters
_METHOD_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def validate_method(method: str) -> str:
    """Return ``method`` if it is a legal HTTP method token.

    Raises:
        InvalidMethodError: If the method is empty or contains non-token characters.
    """
    if not _METHOD_TOKEN.fullmatch(method):
        raise InvalidMethodError(f"Invalid HTTP method: {method!r}")
    return method


def build_headers(
    auth: AuthConfig,
    headers: Sequence[KeyValue],
    encoded_body: EncodedBody,
) -> httpx.Headers:
    """Assemble outbound headers.

    Applied in order, each write replacing earlier values of the same name
    (case-insensitive): auth header, explicit headers, body Content-Type
    default. An explicit Authorization header therefore overrides auth.

    Raises:
        UnicodeEncodeError: If a header name or value is not ASCII.
    """
    result = httpx.Headers(encoding="ascii")
    for name, value in auth_headers(auth).items():
        result[name] = value
    for header in headers:
        if header.is_active:
            result[header.key] = header.value
    if encoded_body.content_type is not None:
        result["Content-Type"] = encoded_body.content_type
    return result


def _text_encoding(response: httpx.Response) -> str:
    """Charset for decoding the body, or utf-8 when it is not a text codec.

    codecs.lookup accepts bytes-to-bytes codecs such as base64 or zlib, which
    cannot decode a body to text.
    """
    encoding = response.encoding or "utf-8"
    try:
        info = codecs.lookup(encoding)
    except LookupError:
        return "utf-8"
    if not getattr(info, "_is_text_encoding", True):
        return "utf-8"
    return encoding


class Executor:
    """Executes RequestConfigs over a single httpx client.

    Usage:
        executor = Executor()
        try:
            response = executor.execute(config)
        finally:
            executor.close()

    Or with context manager:
        with Executor() as executor:
            response = executor.execute(config)
    """

    def __init__(
        self,
        transport_config: TransportConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            transport_config: Timeout, TLS and redirect settings. Defaults to
                TransportConfig() (60s timeout, certificates not verified).
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.

        Raises:
            ClientBuildError: If the HTTP client cannot be created.
        """
        self._transport_config = transport_config or TransportConfig()
        kwargs = self._build_client_kwargs(self._transport_config)
        if transport is not None:
            kwargs["transport"] = transport
        try:
            self._client = httpx.Client(**kwargs)
        except (OSError, ValueError, TypeError) as e:
            raise ClientBuildError(f"Failed to create HTTP client: {e}") from e

    def __enter__(self) -> "Executor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    @staticmethod
    def _build_client_kwargs(config: TransportConfig) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration.

        Raises:
            ClientBuildError: If the CA bundle cannot be loaded.
        """
        kwargs: dict[str, Any] = {
            "timeout": config.timeout,
            "follow_redirects": config.follow_redirects,
        }

        if config.ca_bundle:
            try:
                kwargs["verify"] = ssl.create_default_context(cafile=config.ca_bundle)
            except (OSError, ValueError) as e:
                raise ClientBuildError(
                    f"Failed to create HTTP client: cannot load CA bundle '{config.ca_bundle}': {e}"
                ) from e
        elif not config.verify_ssl:
            kwargs["verify"] = False
        # else: use httpx default (True)

        return kwargs

    def execute(self, config: RequestConfig) -> ResponseData:
        """Send one request and return the normalized response.

        Args:
            config: The request to send.

        Returns:
            ResponseData. Non-2xx statuses are returned, not raised.

        Raises:
            InvalidUrlError: URL is not absolute after normalization.
            InvalidMethodError: Method is not a legal token.
            RequestTimeoutError: No response within the timeout.
            NetworkError: The server could not be reached.
            RequestFailedError: Any other transport failure.
        """
        start_time = time.perf_counter()
        # httpx timeouts apply per phase; the deadline caps the whole exchange
        deadline = start_time + self._transport_config.timeout

        url = build_url(config.url, config.params)
        method = validate_method(config.method)
        encoded = encode_body(config.body, config.headers)

        try:
            headers = build_headers(config.auth, config.headers, encoded)
            request = self._client.build_request(
                method,
                url,
                headers=headers,
                content=encoded.content,
                files=encoded.files,
            )
            # httpx uppercases; methods are case-sensitive on the wire
            request.method = method
            http_response = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError() from e
        except httpx.ConnectError as e:
            raise NetworkError() from e
        except httpx.RequestError as e:
            raise RequestFailedError(str(e) or type(e).__name__) from e
        except UnicodeEncodeError as e:
            # Header names and values must be ASCII
            raise RequestFailedError(
                f"non-ASCII character {e.object[e.start:e.end]!r} in request headers"
            ) from e

        try:
            if time.perf_counter() > deadline:
                raise RequestTimeoutError()
            body = self._read_body(http_response, deadline)
        finally:
            http_response.close()

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        return self._convert_response(http_response, body, elapsed_ms)

    def _read_body(self, response: httpx.Response, deadline: float) -> str:
        """Read the whole body as text, giving up at ``deadline``.

        A failed or overdue read does not fail the request: status and headers
        are already valid, so the body becomes a diagnostic message instead.
        Undecodable bytes are replaced rather than raised.
        """
        chunks: list[bytes] = []
        try:
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if time.perf_counter() > deadline:
                    return (
                        "Failed to read response body: timed out after "
                        f"{self._transport_config.timeout:g}s"
                    )
        except (httpx.HTTPError, httpx.StreamError) as e:
            return f"Failed to read response body: {e}"

        content = b"".join(chunks)
        try:
            return content.decode(_text_encoding(response), errors="replace")
        except (UnicodeError, ValueError):
            return content.decode("utf-8", errors="replace")

    @staticmethod
    def _convert_response(
        response: httpx.Response,
        body: str,
        elapsed_ms: int,
    ) -> ResponseData:
        """Convert an httpx Response to ResponseData.

        Header keys are lowercased and repeated headers keep their last value.
        Values that are not valid UTF-8 are dropped.
        """
        headers: dict[str, str] = {}
        for raw_key, raw_value in response.headers.raw:
            try:
                value = raw_value.decode("utf-8")
            except UnicodeDecodeError:
                continue
            headers[raw_key.decode("latin-1").lower()] = value

        return ResponseData(
            status=response.status_code,
            status_text=httpx.codes.get_reason_phrase(response.status_code) or "Unknown",
            headers=headers,
            body=body,
            time=max(elapsed_ms, 0),
            size=len(body.encode("utf-8")),
        )


def execute_http_request(
    config: RequestConfig,
    transport_config: TransportConfig | None = None,
    transport: httpx.BaseTransport | None = None,
) -> ResponseData:
    """Send ``config`` with a fresh client and return the normalized response.

    Each call builds and closes its own client; nothing is shared between calls.

    Raises:
        ExecutorError: Subclass describing the failure; str(error) is the
            user-facing message.
    """
    with Executor(transport_config, transport=transport) as executor:
        return executor.execute(config)
