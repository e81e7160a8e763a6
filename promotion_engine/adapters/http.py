"""
HTTP / REST adapter (httpx).

Supports GET, POST, PUT and DELETE. POST/PUT send the parameters as a JSON
body; GET/DELETE send them as query parameters. A 2xx answer is a success;
any other status is a failed response carrying the status and body.
"""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional

import httpx

from promotion_engine.adapters.base import (
    ExternalSystemAdapter,
    ExternalSystemRequest,
    ExternalSystemResponse,
)
from promotion_engine.config import get_settings
from promotion_engine.exceptions import TransportError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE")
DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


# Exchanges run here so the caller can stop waiting at the deadline.
_EXCHANGE_POOL = ThreadPoolExecutor(max_workers=32, thread_name_prefix="promotion_http")


def send_with_deadline(
    client: httpx.Client,
    request: httpx.Request,
    timeout: float,
    system_type: str,
) -> tuple[httpx.Response, bytes]:
    """
    Send request and read the body, giving up once `timeout` seconds have passed overall.

    The exchange runs on a worker thread and the caller waits at most `timeout`
    for it, whichever phase (connect, headers or body) is slow. An abandoned
    exchange stops at its next body chunk and closes its connection; the httpx
    per-phase timeouts bound how long its worker can linger.
    """
    endpoint = str(request.url)
    abandoned = threading.Event()
    future = _EXCHANGE_POOL.submit(_exchange, client, request, timeout, system_type, abandoned)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        abandoned.set()
        logger.debug("Abandoned %s exchange with %s after %ss", system_type, endpoint, timeout)
        raise TransportError(
            f"{system_type} call to {endpoint} timed out after {timeout}s",
            system_type=system_type,
            endpoint=endpoint,
            timed_out=True,
        ) from exc


def _exchange(
    client: httpx.Client,
    request: httpx.Request,
    timeout: float,
    system_type: str,
    abandoned: threading.Event,
) -> tuple[httpx.Response, bytes]:
    endpoint = str(request.url)
    try:
        response = client.send(request, stream=True)
    except httpx.TimeoutException as exc:
        raise TransportError(
            f"{system_type} call to {endpoint} timed out after {timeout}s",
            system_type=system_type,
            endpoint=endpoint,
            timed_out=True,
        ) from exc
    except httpx.HTTPError as exc:
        raise TransportError(
            f"{system_type} call to {endpoint} failed: {exc}",
            system_type=system_type,
            endpoint=endpoint,
        ) from exc

    body = bytearray()
    try:
        for chunk in response.iter_bytes():
            if abandoned.is_set():
                raise TransportError(
                    f"{system_type} response from {endpoint} not received within {timeout}s",
                    system_type=system_type,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    timed_out=True,
                )
            body.extend(chunk)
    except httpx.TimeoutException as exc:
        raise TransportError(
            f"{system_type} response from {endpoint} timed out after {timeout}s",
            system_type=system_type,
            endpoint=endpoint,
            timed_out=True,
        ) from exc
    except httpx.HTTPError as exc:
        raise TransportError(
            f"{system_type} response from {endpoint} could not be read: {exc}",
            system_type=system_type,
            endpoint=endpoint,
        ) from exc
    finally:
        response.close()
    return response, bytes(body)


def decode_body(response: httpx.Response, body: bytes) -> str:
    return body.decode(response.charset_encoding or "utf-8", errors="replace")


def _query_value(value: Any) -> Any:
    if isinstance(value, (str, int, float)):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def _parse_json(text: str) -> dict[str, Any]:
    if not text.strip():
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {"response": text}
    if isinstance(parsed, dict):
        return parsed
    return {"response": parsed}


class HttpAdapter(ExternalSystemAdapter):
    """
    JSON over HTTP.

    Parameters: `method` (default POST) and `headers`. Pass `client` to share a
    connection pool; an adapter only closes a client it created.
    """

    adapter_type = "HTTP"

    def __init__(
        self,
        endpoint: str,
        parameters: Optional[Mapping[str, Any]] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(endpoint)
        params = dict(parameters or {})
        self.method = str(params.get("method") or "POST").upper()
        if self.method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported HTTP method '{self.method}'; expected one of {', '.join(SUPPORTED_METHODS)}")
        self.headers = {str(k): str(v) for k, v in (params.get("headers") or {}).items()}
        self._owns_client = client is None
        self._client = client or httpx.Client()

    def _build_request(self, request: ExternalSystemRequest, timeout: float) -> httpx.Request:
        headers = {**DEFAULT_HEADERS, **self.headers, **request.headers, "X-Request-ID": request.request_id}
        if self.method in ("POST", "PUT"):
            return self._client.build_request(
                self.method,
                self.endpoint,
                content=json.dumps(request.parameters, default=str).encode("utf-8"),
                headers=headers,
                timeout=httpx.Timeout(timeout),
            )
        return self._client.build_request(
            self.method,
            self.endpoint,
            params={k: _query_value(v) for k, v in request.parameters.items()},
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )

    def call(self, request: ExternalSystemRequest, timeout: float) -> ExternalSystemResponse:
        start = time.perf_counter()
        http_request = self._build_request(request, timeout)
        response, body = send_with_deadline(self._client, http_request, timeout, self.adapter_type)
        elapsed_ms = (time.perf_counter() - start) * 1000
        text = decode_body(response, body)
        if response.is_success:
            return ExternalSystemResponse.ok(_parse_json(text), response.status_code, elapsed_ms)
        logger.debug("HTTP %s from %s: %s", response.status_code, self.endpoint, text[:200])
        return ExternalSystemResponse.failed(
            f"HTTP {response.status_code} from {self.endpoint}",
            status_code=response.status_code,
            execution_time_ms=elapsed_ms,
            data={"body": text},
        )

    def is_available(self) -> bool:
        try:
            response = self._client.head(self.endpoint, timeout=get_settings().http_availability_timeout)
        except httpx.HTTPError as exc:
            logger.debug("Availability check failed for %s: %s", self.endpoint, exc)
            return False
        return response.status_code < 500

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
