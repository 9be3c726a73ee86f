"""URL normalization and query parameter injection.

Turns the raw URL typed by the user into an absolute httpx.URL with the
enabled query parameters appended.
"""

from __future__ import annotations

from typing import Iterable

import httpx

from reqly.errors import InvalidUrlError
from reqly.models import KeyValue


def normalize_url(raw_url: str) -> str:
    """Prepend http:// to bare ``localhost:PORT`` and IP-style URLs.

    Anything starting with ``localhost:`` or a digit is treated as a
    scheme-less address. Everything else is returned unchanged.
    """
    if raw_url.startswith("localhost:") or raw_url[:1].isdigit():
        if not raw_url.startswith(("http://", "https://")):
            return f"http://{raw_url}"
    return raw_url


def parse_url(url: str) -> httpx.URL:
    """Parse ``url`` and require it to be absolute (scheme and host).

    Raises:
        InvalidUrlError: If the URL is malformed or relative.
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidUrlError(f"Invalid URL: {e}") from e

    if not parsed.scheme:
        raise InvalidUrlError(f"Invalid URL: relative URL without a base: {url!r}")
    if not parsed.host:
        raise InvalidUrlError(f"Invalid URL: empty host: {url!r}")
    return parsed


def add_query_params(url: httpx.URL, params: Iterable[KeyValue]) -> httpx.URL:
    """Append every active parameter to the URL's query string.

    The existing query is kept byte for byte; only the new pairs are
    form-encoded. Repeated keys all persist, in input order.
    """
    pairs = [(param.key, param.value) for param in params if param.is_active]
    if not pairs:
        return url

    # copy_add_param would re-encode the whole query (?flag -> ?flag=)
    appended = str(httpx.QueryParams(pairs))
    existing = url.query.decode("ascii")
    query = f"{existing}&{appended}" if existing else appended
    return url.copy_with(query=query.encode("ascii"))


def build_url(raw_url: str, params: Iterable[KeyValue] = ()) -> httpx.URL:
    """Normalize, parse and add query parameters in one step."""
    return add_query_params(parse_url(normalize_url(raw_url)), params)
