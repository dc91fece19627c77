"""Test bootstrap for scenario-executor."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from scenario_executor.models import ResponseSnapshot  # noqa: E402
from scenario_executor.registry import PatternRegistry  # noqa: E402
from scenario_executor.runner import ScenarioRunner  # noqa: E402


class FakeTransport:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def __call__(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[dict[str, str]] = None,
        use_proxy: bool = False,
        body: Any = None,
    ) -> ResponseSnapshot:
        self.calls.append({"url": url, "method": method, "headers": dict(headers or {}), "use_proxy": use_proxy, "body": body})
        if not self.responses:
            return ResponseSnapshot(status=200, headers={"Content-Type": "application/json"}, body={"url": url})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry() -> PatternRegistry:
    return PatternRegistry()


@pytest.fixture
def runner(registry: PatternRegistry, transport: FakeTransport) -> ScenarioRunner:
    return ScenarioRunner(registry, send_request=transport)
