"""Response assertions - declarative checks evaluated against ResponseData.

Each assertion resolves one subject of the response (status, a header, the
body text, a JSONPath into the JSON body, or the response time) and applies
one operator to it. Evaluation never raises: every problem, including an
unparseable body or a bad JSONPath, becomes a failed AssertionResult.

Usage:
    results = evaluate_assertions(request_file.assertions, response)
    failed = [r for r in results if not r.passed]
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Callable, Sequence

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from reqly.models import (
    Assertion,
    AssertionOperator,
    AssertionResult,
    AssertionSubject,
    ResponseData,
)


class _NotFound:
    """Sentinel for a subject that did not resolve (distinct from JSON null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<NOT_FOUND>"


NOT_FOUND = _NotFound()


class SubjectError(Exception):
    """Raised when an assertion's subject cannot be resolved at all."""


@lru_cache(maxsize=128)
def _compile_jsonpath(path: str) -> Any:
    try:
        return jsonpath_parse(path)
    except (JsonPathLexerError, JsonPathParserError) as e:
        raise SubjectError(f"Invalid JSONPath '{path}': {e}") from e


def _parse_json_body(body: str) -> Any:
    try:
        return json.loads(body or "{}")
    except json.JSONDecodeError as e:
        raise SubjectError("Response body is not valid JSON") from e


def resolve_subject(assertion: Assertion, response: ResponseData) -> Any:
    """Return the value the assertion inspects, or NOT_FOUND.

    Raises:
        SubjectError: If the body is not JSON or the JSONPath is invalid.
    """
    subject = assertion.subject
    if subject == AssertionSubject.STATUS:
        return response.status
    if subject == AssertionSubject.RESPONSE_TIME:
        return response.time
    if subject == AssertionSubject.BODY:
        return response.body
    if subject == AssertionSubject.HEADER:
        return response.headers.get(assertion.key.lower(), NOT_FOUND)

    document = _parse_json_body(response.body)
    if not assertion.key:
        return document
    matches = _compile_jsonpath(assertion.key).find(document)
    return matches[0].value if matches else NOT_FOUND


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_equal(assertion: Assertion, actual: Any) -> str | None:
    expected = assertion.value
    if assertion.subject in (AssertionSubject.HEADER, AssertionSubject.BODY) and _is_number(expected):
        expected = str(expected)
    if actual == expected:
        return None
    if assertion.subject == AssertionSubject.STATUS:
        return f"Expected status {expected}, got {actual}"
    if assertion.subject == AssertionSubject.HEADER:
        return f"Header '{assertion.key}' expected {expected!r}, got {actual!r}"
    return f"Expected {actual!r} to equal {expected!r}"


def _check_below(assertion: Assertion, actual: Any) -> str | None:
    if _is_number(actual) and actual < assertion.value:
        return None
    return f"Expected {actual!r} to be below {assertion.value}"


def _check_above(assertion: Assertion, actual: Any) -> str | None:
    if _is_number(actual) and actual > assertion.value:
        return None
    return f"Expected {actual!r} to be above {assertion.value}"


def _check_include(assertion: Assertion, actual: Any) -> str | None:
    if isinstance(actual, str) and assertion.value in actual:
        return None
    return f"Expected {actual!r} to include {assertion.value!r}"


def _check_property(assertion: Assertion, actual: Any) -> str | None:
    if isinstance(actual, dict) and assertion.value in actual:
        return None
    return f"Expected object to have property '{assertion.value}'"


def _check_exists(assertion: Assertion, actual: Any) -> str | None:
    # Reached only when the subject resolved
    return None


OPERATOR_CHECKS: dict[AssertionOperator, Callable[[Assertion, Any], str | None]] = {
    AssertionOperator.EQUAL: _check_equal,
    AssertionOperator.BELOW: _check_below,
    AssertionOperator.ABOVE: _check_above,
    AssertionOperator.INCLUDE: _check_include,
    AssertionOperator.PROPERTY: _check_property,
    AssertionOperator.EXISTS: _check_exists,
}


def _not_found_message(assertion: Assertion) -> str:
    if assertion.subject == AssertionSubject.HEADER:
        return f"Header '{assertion.key}' not found"
    return f"No match for JSONPath '{assertion.key}'"


def evaluate_assertion(assertion: Assertion, response: ResponseData) -> AssertionResult:
    """Evaluate one assertion against a response."""
    try:
        actual = resolve_subject(assertion, response)
    except SubjectError as e:
        return AssertionResult(name=assertion.label, passed=False, message=str(e))

    if actual is NOT_FOUND:
        message = _not_found_message(assertion)
    else:
        message = OPERATOR_CHECKS[assertion.op](assertion, actual)
    return AssertionResult(name=assertion.label, passed=message is None, message=message)


def evaluate_assertions(
    assertions: Sequence[Assertion],
    response: ResponseData,
) -> list[AssertionResult]:
    """Evaluate every assertion in order."""
    return [evaluate_assertion(assertion, response) for assertion in assertions]
