"""Built-in step behaviors.

Every behavior follows the same call contract::

    behavior(context, response, variables, step, clean_text, TestResult, send_request)

and returns a list of ``StepResult`` (or an awaitable of one). ``response`` and
``variables`` are the live objects held by the run's ``ExecutionContext``.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Callable, Mapping, Optional

import structlog

from .context import ExecutionContext
from .models import (
    AssertionDetails,
    ErrorDetails,
    InfoDetails,
    ResponseSnapshot,
    SendRequest,
    StepPattern,
    StepResult,
    StepType,
)

LOGGER = structlog.get_logger("scenario_executor")

_BUILTINS: list[StepPattern] = []
_MISSING = object()
_PATH_SEPARATORS = re.compile(r"[.\[\]]+")


def builtin(pattern_id: str, step_type: StepType, pattern: str, description: str) -> Callable:
    def decorator(func: Callable) -> Callable:
        _BUILTINS.append(
            StepPattern(
                id=pattern_id,
                step_type=step_type,
                pattern=pattern,
                description=description,
                behavior=func,
                is_builtin=True,
            )
        )
        func.pattern = pattern  # type: ignore[attr-defined]
        return func

    return decorator


def default_patterns() -> tuple[StepPattern, ...]:
    return tuple(_BUILTINS)


def TestResult(
    name: str,
    passed: bool,
    details: Any = None,
    error: Optional[str] = None,
) -> StepResult:
    """Result factory handed to behaviors."""
    return StepResult.model_validate({"name": name, "passed": passed, "details": details, "error": error})


TestResult.__test__ = False  # type: ignore[attr-defined]


def _groups(func: Callable, clean_text: str) -> Optional[tuple[Any, ...]]:
    match = re.fullmatch(func.pattern, clean_text.strip(), re.IGNORECASE)  # type: ignore[attr-defined]
    return match.groups() if match else None


def resolve_path(response: ResponseSnapshot, path: str) -> Any:
    """Walk ``path`` (``a.b[0].c``) through the response body; a leading ``body`` is optional."""
    parts = [part for part in _PATH_SEPARATORS.split(path) if part]
    if parts and parts[0] == "body":
        parts = parts[1:]
    current: Any = response.body
    for part in parts:
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            return _MISSING
        if current is _MISSING:
            return _MISSING
    return current


def type_name(value: Any) -> str:
    if value is _MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def display_value(value: Any) -> str:
    """Text form used when comparing a response value with a literal from the step."""
    if value is _MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _reported(value: Any) -> Any:
    return "undefined" if value is _MISSING else value


# ---------------------------------------------------------------- Given


@builtin("endpoint-setup", StepType.GIVEN, r'^the API endpoint "([^"]+)"$', "Set the API endpoint")
def set_endpoint(context, response, variables, step, clean_text, TestResult, send_request):
    (endpoint,) = _groups(set_endpoint, clean_text) or (None,)
    if not endpoint:
        return [TestResult("Setup endpoint", False, error="Invalid endpoint format")]
    context.endpoint = context.interpolate(endpoint)
    context.reset_response()
    return [TestResult("Setup endpoint", True, {"endpoint": context.endpoint, "headers": dict(context.headers)})]


@builtin("header-setup", StepType.GIVEN, r'^header "([^"]+)" with value "([^"]+)"$', "Set a request header")
def set_header(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(set_header, clean_text)
    if not groups:
        return [TestResult("Setup header", False, error="Invalid header format")]
    name, value = groups
    applied = context.set_header(name, context.interpolate(value))
    details = {"header": name, "value": context.get_header(name)}
    if not applied:
        details["note"] = "Scenario authorization header takes precedence"
    return [TestResult("Setup header", True, details)]


@builtin("variable-setup", StepType.GIVEN, r'^variable "([^"]+)" with value "([^"]+)"$', "Set a test variable")
def set_variable(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(set_variable, clean_text)
    if not groups:
        return [TestResult("Setup variable", False, error="Invalid variable format")]
    name, value = groups
    variables[name] = value
    return [TestResult("Setup variable", True, {"variable": name, "value": value})]


# ---------------------------------------------------------------- When


async def send_and_record(
    context: ExecutionContext,
    response: ResponseSnapshot,
    send_request: SendRequest,
    method: str,
    body: Any = None,
) -> list[StepResult]:
    """Send a request to the context endpoint and store the reply in ``response``."""
    if not context.endpoint:
        return [
            TestResult(
                "HTTP Request",
                False,
                ErrorDetails(
                    message="No endpoint configured",
                    suggestion='Add a step like: Given the API endpoint "https://api.example.com"',
                ),
                error="No endpoint configured. Please set an endpoint using a Given step first.",
            )
        ]

    request = {"method": method, "headers": dict(context.headers), "use_proxy": context.use_proxy}
    if body is not None:
        request["body"] = body
    try:
        result = await send_request(
            context.endpoint,
            method=method,
            headers=dict(context.headers),
            use_proxy=context.use_proxy,
            body=body,
        )
    except Exception as exc:
        LOGGER.warning("request_failed", method=method, endpoint=context.endpoint, error=str(exc))
        response.status = 500
        response.headers = {}
        response.body = {"error": str(exc)}
        context.emit(method, context.endpoint, request, response.model_dump(mode="json"))
        return [
            TestResult(
                "HTTP Request",
                False,
                ErrorDetails(
                    message=str(exc),
                    endpoint=context.endpoint,
                    suggestion="Check if the endpoint is accessible and the network connection is stable",
                ),
                error="Request failed",
            )
        ]

    if isinstance(result, Mapping):
        result = ResponseSnapshot.model_validate(result)
    response.status = result.status
    response.headers = dict(result.headers or {})
    response.body = result.body
    context.emit(method, context.endpoint, request, response.model_dump(mode="json"))

    success = result.status is not None and result.status < 400
    return [
        TestResult(
            "HTTP Request",
            success,
            InfoDetails(status=result.status, endpoint=context.endpoint, response=result.body),
            error=None if success else f"Request failed with status {result.status}",
        )
    ]


@builtin("get-request", StepType.WHEN, r"^I send a GET request$", "Send a GET request")
async def send_get(context, response, variables, step, clean_text, TestResult, send_request):
    return await send_and_record(context, response, send_request, "GET")


@builtin(
    "send-request",
    StepType.WHEN,
    r'^I send a (POST|PUT|PATCH|DELETE) request(?: with body "(.*)")?$',
    "Send a request with another HTTP method",
)
async def send_with_method(context, response, variables, step, clean_text, TestResult, send_request):
    method, raw_body = _groups(send_with_method, clean_text) or ("POST", None)
    body: Any = None
    if raw_body is not None:
        text = context.interpolate(raw_body)
        try:
            body = json.loads(text)
        except json.JSONDecodeError:
            body = text
    return await send_and_record(context, response, send_request, method.upper(), body)


@builtin("wait", StepType.WHEN, r"^wait for (\d+) (seconds|milliseconds)$", "Wait for a specified duration")
async def wait(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(wait, clean_text)
    if not groups:
        return [TestResult("Wait", False, error="Invalid wait format")]
    amount, unit = groups
    seconds = int(amount) if unit.lower() == "seconds" else int(amount) / 1000
    await asyncio.sleep(seconds)
    return [TestResult("Wait", True, {"duration": f"{amount} {unit}"})]


# ---------------------------------------------------------------- Then


def _status_check(name: str, expected: int, response: ResponseSnapshot) -> StepResult:
    if response.status is None:
        return TestResult(
            name,
            False,
            AssertionDetails(expected=expected, actual="No response"),
            error="No response available to check status code",
        )
    return TestResult(name, response.status == expected, AssertionDetails(expected=expected, actual=response.status))


@builtin("status-check", StepType.THEN, r"^status should be (\d+)$", "Check response status code")
def check_status(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_status, clean_text)
    if not groups:
        return [TestResult("Status Check", False, error="Invalid status format")]
    return [_status_check("Status Check", int(groups[0]), response)]


@builtin(
    "response-status",
    StepType.THEN,
    r"^the response status should be (\d+)$",
    "Validates that the response status code matches the expected value",
)
def check_response_status(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_response_status, clean_text)
    if not groups:
        return [TestResult("Status Check", False, error="Invalid status format")]
    return [_status_check("Status Check", int(groups[0]), response)]


@builtin("response-valid", StepType.THEN, r"^the response should be valid$", "Validate response status and structure")
def check_response_valid(context, response, variables, step, clean_text, TestResult, send_request):
    valid_status = response.status == 200
    valid_body = isinstance(response.body, (dict, list))
    issues = []
    if not valid_status:
        issues.append(f"Invalid status code: {response.status}, expected: 200")
    if not valid_body:
        issues.append("Invalid or missing response body")
    passed = valid_status and valid_body
    return [
        TestResult(
            "Response Validation",
            passed,
            AssertionDetails(
                expected={"status": 200, "body_type": "object"},
                actual={"status": response.status, "body_type": type_name(response.body)},
            ),
            error=None if passed else ", ".join(issues),
        )
    ]


@builtin(
    "response-valid-status",
    StepType.THEN,
    r"^response should be valid with status (\d+)$",
    "Check if response is valid with specific status",
)
def check_response_valid_status(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_response_valid_status, clean_text)
    if not groups:
        return [TestResult("Response Validation", False, error="Invalid pattern format")]
    expected = int(groups[0])
    valid = response.status == expected and response.body is not None
    actual = (
        f"Response status: {response.status}, body: {json.dumps(response.body, default=str)[:100]}"
        if response.status is not None
        else "No response received"
    )
    return [
        TestResult(
            "Response Validation",
            valid,
            AssertionDetails(
                expected=f"Valid response with status {expected}",
                actual=actual,
                suggestion=None if valid else "Response is not valid or status code does not match",
            ),
        )
    ]


@builtin("path-object-check", StepType.THEN, r'^path "([^"]+)" should be an object$', "Check if value at path is an object")
def check_path_object(context, response, variables, step, clean_text, TestResult, send_request):
    (path,) = _groups(check_path_object, clean_text) or (None,)
    if path is None:
        return [TestResult("Object Check", False, error="Invalid path format")]
    actual = type_name(resolve_path(response, path))
    return [TestResult("Object Check", actual == "object", AssertionDetails(expected="object", actual=actual, path=path))]


@builtin("path-array-check", StepType.THEN, r'^path "([^"]+)" should be an array$', "Check if value at path is an array")
def check_path_array(context, response, variables, step, clean_text, TestResult, send_request):
    (path,) = _groups(check_path_array, clean_text) or (None,)
    if path is None:
        return [TestResult("Array Check", False, error="Invalid path format")]
    value = resolve_path(response, path)
    if isinstance(value, list):
        preview = ", ".join(display_value(item) for item in value[:2])
        actual = f"array[{len(value)}] = [{preview}{', ...' if len(value) > 2 else ''}]"
    else:
        actual = type_name(value)
    return [
        TestResult(
            "Array Check",
            isinstance(value, list),
            AssertionDetails(expected="array", actual=actual, path=path, actual_value=_reported(value)),
        )
    ]


@builtin(
    "path-type-check",
    StepType.THEN,
    r'^path "([^"]+)" should be of type "([^"]+)"$',
    "Check type of value at path",
)
def check_path_type(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_path_type, clean_text)
    if not groups:
        return [TestResult("Type Check", False, error="Invalid path format")]
    path, expected_type = groups
    value = resolve_path(response, path)
    actual_type = type_name(value)
    return [
        TestResult(
            "Type Check",
            actual_type == expected_type,
            AssertionDetails(expected=expected_type, actual=actual_type, path=path, actual_value=_reported(value)),
        )
    ]


@builtin("path-value-check", StepType.THEN, r'^path "([^"]+)" should be "([^"]*)"$', "Check exact value at path")
def check_path_value(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_path_value, clean_text)
    if not groups:
        return [TestResult("Value Check", False, error="Invalid path format")]
    path, expected = groups
    expected = context.interpolate(expected)
    value = resolve_path(response, path)
    return [
        TestResult(
            "Value Check",
            display_value(value) == expected,
            AssertionDetails(expected=expected, actual=_reported(value), path=path),
        )
    ]


@builtin("path-check", StepType.THEN, r'^path "([^"]+)" should be (.+)$', "Check value at JSON path")
def check_path(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_path, clean_text)
    if not groups:
        return [TestResult("Path Value Check", False, error="Invalid path format")]
    path, expected = groups
    value = resolve_path(response, path)
    return [
        TestResult(
            "Path Value Check",
            display_value(value) == expected,
            AssertionDetails(expected=expected, actual=_reported(value), path=path),
        )
    ]


@builtin("array-length", StepType.THEN, r"^should have (\d+) items$", "Check array length")
def check_array_length(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_array_length, clean_text)
    if not isinstance(response.body, list):
        return [TestResult("Array Length Check", False, error="Response body is not an array")]
    if not groups:
        return [TestResult("Array Length Check", False, error="Invalid length format")]
    expected = int(groups[0])
    return [
        TestResult(
            "Array Length Check",
            len(response.body) == expected,
            AssertionDetails(expected=expected, actual=len(response.body)),
        )
    ]


@builtin("store-path", StepType.THEN, r'^I store path "([^"]+)" as "([^"]+)"$', "Store a response value in a variable")
def store_path(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(store_path, clean_text)
    if not groups:
        return [TestResult("Store Value", False, error="Invalid store format")]
    path, name = groups
    value = resolve_path(response, path)
    if value is _MISSING:
        return [
            TestResult(
                "Store Value",
                False,
                ErrorDetails(message=f"Path {path} not found in response", path=path),
                error=f"Path {path} not found in response",
            )
        ]
    variables[name] = value
    return [TestResult("Store Value", True, {"variable": name, "value": value})]


@builtin(
    "variable-check",
    StepType.THEN,
    r'^variable "([^"]+)" should be "([^"]*)"$',
    "Check the value of a test variable",
)
def check_variable(context, response, variables, step, clean_text, TestResult, send_request):
    groups = _groups(check_variable, clean_text)
    if not groups:
        return [TestResult("Variable Check", False, error="Invalid variable format")]
    name, expected = groups
    value = variables.get(name, _MISSING)
    return [
        TestResult(
            "Variable Check",
            display_value(value) == expected,
            AssertionDetails(expected=expected, actual=_reported(value), variable=name),
        )
    ]


# ---------------------------------------------------------------- And


@builtin(
    "response-success",
    StepType.AND,
    r"^the response should be successful$",
    "Validates that the response status is in the successful range (200-299)",
)
def check_response_success(context, response, variables, step, clean_text, TestResult, send_request):
    if response.status is None:
        return [
            TestResult(
                "Success Check",
                False,
                AssertionDetails(expected="200-299 status code", actual="No response"),
                error="No response available to check status",
            )
        ]
    return [
        TestResult(
            "Success Check",
            200 <= response.status < 300,
            AssertionDetails(expected="200-299 status code", actual=response.status),
        )
    ]
