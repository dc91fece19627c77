"""Default ``send_request`` implementation backed by urllib."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Optional
from urllib import error, request

import structlog

from .errors import TransportError
from .models import ResponseSnapshot

LOGGER = structlog.get_logger("scenario_executor")

DEFAULT_PROXY_BASE_URL = "http://localhost:8080/api/proxy"
DEFAULT_TIMEOUT = 10.0


class HttpTransport:
    """Sends step requests directly or through the configured proxy.

    Proxy routing strips the upstream base from absolute URLs and prefixes the
    proxy base; relative URLs are sent to the proxy host.
    """

    def __init__(
        self,
        proxy_base_url: Optional[str] = None,
        upstream_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        env_proxy = os.getenv("SCENARIO_PROXY_BASE_URL", DEFAULT_PROXY_BASE_URL)
        self._proxy_base = (proxy_base_url or env_proxy).rstrip("/")
        env_upstream = os.getenv("SCENARIO_UPSTREAM_BASE_URL", "")
        self._upstream_base = (upstream_base_url or env_upstream).rstrip("/")
        env_timeout = os.getenv("SCENARIO_HTTP_TIMEOUT", str(DEFAULT_TIMEOUT))
        self._timeout = timeout or float(env_timeout)

    async def __call__(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[dict[str, str]] = None,
        use_proxy: bool = False,
        body: Any = None,
    ) -> ResponseSnapshot:
        target = self.transform_url(url) if use_proxy else url
        request_headers = {"Accept": "application/json", "Content-Type": "application/json"}
        request_headers.update(headers or {})
        payload = self._encode_body(method, body)
        return await asyncio.to_thread(self._perform_request, method.upper(), target, request_headers, payload)

    def transform_url(self, url: str) -> str:
        if url.startswith("http"):
            if self._upstream_base and url.startswith(self._upstream_base):
                url = url[len(self._upstream_base):]
                return f"{self._proxy_base}{url if url.startswith('/') or not url else '/' + url}"
            return f"{self._proxy_base}/{url}"
        proxy_host = self._proxy_base.split("/api/", 1)[0]
        return f"{proxy_host}{url if url.startswith('/') else '/' + url}"

    @staticmethod
    def _encode_body(method: str, body: Any) -> bytes | None:
        if method.upper() == "GET" or body is None:
            return None
        if isinstance(body, (dict, list)):
            return json.dumps(body).encode("utf-8")
        if isinstance(body, bytes):
            return body
        return str(body).encode("utf-8")

    @staticmethod
    def _decode_body(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    def _perform_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None,
    ) -> ResponseSnapshot:
        req = request.Request(url, data=body, headers=headers, method=method)
        try:
            with request.urlopen(req, timeout=self._timeout) as response:
                text = response.read().decode("utf-8", errors="replace")
                status = response.getcode()
                response_headers = dict(response.headers.items())
        except error.HTTPError as exc:
            text = exc.read().decode("utf-8", errors="replace")
            status = exc.code
            response_headers = dict(exc.headers.items()) if exc.headers else {}
        except (error.URLError, TimeoutError, ValueError) as exc:
            raise TransportError(f"HTTP request failed for {method} {url}: {exc}") from exc
        LOGGER.debug("http_response", method=method, url=url, status=status)
        return ResponseSnapshot(status=status, headers=response_headers, body=self._decode_body(text))
