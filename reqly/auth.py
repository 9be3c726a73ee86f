"""Authentication strategies.

Each strategy turns an AuthConfig into the headers it contributes. A strategy
whose required fields are missing contributes nothing: auth is skipped, the
request is still sent.
"""

from __future__ import annotations

import base64
from typing import Callable

from reqly.models import AuthConfig, AuthType

AuthStrategy = Callable[[AuthConfig], dict[str, str]]


def _no_auth(auth: AuthConfig) -> dict[str, str]:
    return {}


def _basic_auth(auth: AuthConfig) -> dict[str, str]:
    """Authorization: Basic base64(username:password)."""
    if auth.username is None or auth.password is None:
        return {}
    credentials = f"{auth.username}:{auth.password}".encode("utf-8")
    encoded = base64.b64encode(credentials).decode("ascii")
    return {"Authorization": f"Basic {encoded}"}


def _bearer_auth(auth: AuthConfig) -> dict[str, str]:
    if auth.token is None:
        return {}
    return {"Authorization": f"Bearer {auth.token}"}


def _api_key_auth(auth: AuthConfig) -> dict[str, str]:
    """Put the key in the header named by api_key_header."""
    if auth.api_key is None or auth.api_key_header is None:
        return {}
    return {auth.api_key_header: auth.api_key}


AUTH_STRATEGIES: dict[AuthType, AuthStrategy] = {
    AuthType.NONE: _no_auth,
    AuthType.BASIC: _basic_auth,
    AuthType.BEARER: _bearer_auth,
    AuthType.API_KEY: _api_key_auth,
}


def auth_headers(auth: AuthConfig) -> dict[str, str]:
    """Return the headers the active auth strategy adds (possibly none)."""
    return AUTH_STRATEGIES[auth.type](auth)
