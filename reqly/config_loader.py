"""Config Loader - Loads request, environment and transport files.

Files are YAML (JSON is accepted, being valid YAML). ${ENV_VAR} references
in string values are substituted from the process environment before
validation. {{name}} placeholders are left alone: those belong to
reqly.variables and are resolved against an Environment at send time.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from reqly.models import Assertion, Environment, RequestConfig, RequestFile, TransportConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ModelT = TypeVar("ModelT", bound=BaseModel)


def load_request_file(request_path: Path) -> RequestFile:
    """Load a request file: the RequestConfig plus its optional assertions list.

    Keys may be camelCase or snake_case. ``assertions`` is taken out before the
    rest of the mapping is validated as the request.
    """
    raw = _substitute_env_vars(_load_yaml_mapping(request_path, "request"))
    assertions_raw = raw.pop("assertions", None) or []
    if not isinstance(assertions_raw, list):
        raise ConfigError(f"assertions must be a list in {request_path}")

    try:
        request = RequestConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid request structure in {request_path}: {e}") from e

    assertions: list[Assertion] = []
    for index, item in enumerate(assertions_raw):
        try:
            assertions.append(Assertion.model_validate(item))
        except ValidationError as e:
            raise ConfigError(f"Invalid assertion #{index + 1} in {request_path}: {e}") from e

    return RequestFile(request=request, assertions=assertions)


def load_request_config(request_path: Path) -> RequestConfig:
    """Load just the RequestConfig from a request file."""
    return load_request_file(request_path).request


def load_environment(environment_path: Path) -> Environment:
    """Load an Environment with its {{name}} variables."""
    return _load_model(environment_path, Environment, "environment")


def load_transport_config(transport_path: Path) -> TransportConfig:
    """Load transport settings (timeout, verify_ssl, ca_bundle, follow_redirects)."""
    return _load_model(transport_path, TransportConfig, "transport config")


def _load_model(path: Path, model: type[ModelT], kind: str) -> ModelT:
    raw = _load_yaml_mapping(path, kind)
    raw = _substitute_env_vars(raw)
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid {kind} structure in {path}: {e}") from e


def _load_yaml_mapping(path: Path, kind: str) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"{kind.capitalize()} file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {kind} file: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{kind.capitalize()} file must be a YAML mapping: {path}")
    return raw


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
