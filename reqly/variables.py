"""Environment variable substitution for {{name}} placeholders.

Placeholders resolve against the enabled variables of the environment first,
then the global variables. Unresolved placeholders are left untouched so the
user can see what is missing.
"""

from __future__ import annotations

import re
from typing import Sequence

from reqly.models import Environment, KeyValue, RequestConfig, VariableCheck

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def _all_variables(
    environment: Environment | None,
    global_variables: Sequence[KeyValue],
) -> list[KeyValue]:
    env_vars = list(environment.variables) if environment is not None else []
    return env_vars + list(global_variables)


def _lookup(name: str, variables: Sequence[KeyValue]) -> str | None:
    for variable in variables:
        if variable.enabled and variable.key == name:
            return variable.value
    return None


def substitute_variables(
    text: str,
    environment: Environment | None = None,
    global_variables: Sequence[KeyValue] = (),
) -> str:
    """Replace every resolvable {{name}} in ``text``."""
    if not text:
        return text
    variables = _all_variables(environment, global_variables)

    def replace(match: re.Match[str]) -> str:
        value = _lookup(match.group(1).strip(), variables)
        return match.group(0) if value is None else value

    return _PLACEHOLDER.sub(replace, text)


def _substitute_entries(
    entries: Sequence[KeyValue],
    environment: Environment | None,
    global_variables: Sequence[KeyValue],
    keys: bool = True,
) -> list[KeyValue]:
    result = []
    for entry in entries:
        update = {"value": substitute_variables(entry.value, environment, global_variables)}
        if keys:
            update["key"] = substitute_variables(entry.key, environment, global_variables)
        result.append(entry.model_copy(update=update))
    return result


def substitute_request(
    config: RequestConfig,
    environment: Environment | None = None,
    global_variables: Sequence[KeyValue] = (),
) -> RequestConfig:
    """Return a copy of ``config`` with placeholders substituted.

    Covers the URL, header and param keys and values, body content, and
    form-data values. Form-data keys and auth fields are left as written.
    """
    body = config.body
    body_update: dict[str, object] = {}
    if body.content is not None:
        body_update["content"] = substitute_variables(body.content, environment, global_variables)
    if body.form_data is not None:
        body_update["form_data"] = _substitute_entries(
            body.form_data, environment, global_variables, keys=False
        )

    return config.model_copy(
        update={
            "url": substitute_variables(config.url, environment, global_variables),
            "headers": _substitute_entries(config.headers, environment, global_variables),
            "params": _substitute_entries(config.params, environment, global_variables),
            "body": body.model_copy(update=body_update),
        }
    )


def get_variable_references(text: str) -> list[str]:
    """Names referenced by {{name}} placeholders, in order of appearance."""
    return [match.strip() for match in _PLACEHOLDER.findall(text or "")]


def request_variable_references(config: RequestConfig) -> list[str]:
    """Unique variable names referenced anywhere substitution applies."""
    texts = [config.url]
    for entry in [*config.headers, *config.params]:
        texts.extend([entry.key, entry.value])
    if config.body.content is not None:
        texts.append(config.body.content)
    for field in config.body.form_data or []:
        texts.append(field.value)

    seen: dict[str, None] = {}
    for text in texts:
        for name in get_variable_references(text):
            seen.setdefault(name, None)
    return list(seen)


def validate_variables(
    text: str,
    environment: Environment | None = None,
    global_variables: Sequence[KeyValue] = (),
) -> VariableCheck:
    """Report which {{name}} references in ``text`` have no enabled value."""
    return _check_references(get_variable_references(text), environment, global_variables)


def validate_request_variables(
    config: RequestConfig,
    environment: Environment | None = None,
    global_variables: Sequence[KeyValue] = (),
) -> VariableCheck:
    """Like validate_variables, across every substitutable part of a request."""
    return _check_references(request_variable_references(config), environment, global_variables)


def _check_references(
    references: list[str],
    environment: Environment | None,
    global_variables: Sequence[KeyValue],
) -> VariableCheck:
    variables = _all_variables(environment, global_variables)
    missing = [name for name in references if _lookup(name, variables) is None]
    return VariableCheck(references=references, missing=missing)
