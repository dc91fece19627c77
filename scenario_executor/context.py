"""Per-run execution state shared by the steps of one scenario run."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from .models import EventSink, ResponseSnapshot

LOGGER = structlog.get_logger("scenario_executor")

AUTHORIZATION = "Authorization"
_VARIABLE_PATTERN = re.compile(r"\{\{\s*([^}\s]+)\s*\}\}")


@dataclass
class ExecutionContext:
    """Mutable state for one run. Never shared between runs."""

    endpoint: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    response: ResponseSnapshot = field(default_factory=ResponseSnapshot)
    auth_header: Optional[str] = None
    use_proxy: bool = True
    event_sink: Optional[EventSink] = None

    @classmethod
    def start(
        cls,
        *,
        auth_header: Optional[str] = None,
        use_proxy: bool = True,
        event_sink: Optional[EventSink] = None,
    ) -> ExecutionContext:
        context = cls(auth_header=auth_header or None, use_proxy=use_proxy, event_sink=event_sink)
        if context.auth_header:
            context.headers[AUTHORIZATION] = context.auth_header
        return context

    def reset_response(self) -> None:
        # Cleared in place so behaviors holding a reference keep seeing the live object.
        self.response.status = None
        self.response.headers = {}
        self.response.body = None

    def set_header(self, name: str, value: str) -> bool:
        """Set a request header; returns False when the run-level auth header wins."""
        if name.lower() == AUTHORIZATION.lower() and self.auth_header:
            return False
        self.headers[name] = value
        return True

    def get_header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        return next((value for key, value in self.headers.items() if key.lower() == lowered), None)

    def interpolate(self, text: str) -> str:
        """Replace ``{{name}}`` placeholders with run variables; unknown names stay as-is."""

        def _substitute(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in self.variables:
                return str(self.variables[key])
            return match.group(0)

        return _VARIABLE_PATTERN.sub(_substitute, text)

    def emit(self, method: str, url: str, request: Any, response: Any) -> None:
        if self.event_sink is None:
            return
        try:
            self.event_sink(method, url, request, response)
        except Exception:
            LOGGER.exception("event_sink_failed", method=method, url=url)


class CancellationToken:
    """Cooperative cancellation flag checked by the runner before each step."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
