# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

"""
Outbound HTTP transport for identity provider calls, with bounded retries.
"""

import json
from typing import Any

import anyio
import httpx

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import OversizedResponseError, UpstreamError
from coreason_sso.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000
RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryTransport(httpx.AsyncBaseTransport):
    """
    Wraps another transport and retries transient failures.

    Connection/read errors and 429/5xx answers are retried with exponential
    backoff (initial=0.1s, max=1.0s). When attempts run out the last error is
    raised, or the last response returned, so callers always see the failure.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        attempts: int = 3,
        wait_initial: float = 0.1,
        wait_max: float = 1.0,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._transport = transport or httpx.AsyncHTTPTransport()
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        for attempt in range(self.attempts):
            last = attempt == self.attempts - 1
            try:
                response = await self._transport.handle_async_request(request)
            except httpx.TransportError as e:
                if last:
                    raise
                logger.warning(f"IdP request to {request.url.host} failed ({e!r}), retrying")
            else:
                if response.status_code not in RETRY_STATUS_CODES or last:
                    return response
                await response.aclose()
                logger.warning(f"IdP {request.url.host} answered {response.status_code}, retrying")

            await anyio.sleep(min(self.wait_initial * (2**attempt), self.wait_max))

        raise httpx.TransportError("retry loop exhausted")  # pragma: no cover

    async def aclose(self) -> None:
        await self._transport.aclose()


def build_http_client(
    config: SSOConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """
    Creates the client used for discovery, token exchange and user info.

    Args:
        config: Supplies `http_timeout` and `http_retries`.
        transport: Inner transport (tests pass `httpx.MockTransport`).

    Returns:
        httpx.AsyncClient: A client with the retrying transport installed.
    """
    return httpx.AsyncClient(
        transport=RetryTransport(transport, attempts=config.http_retries),
        timeout=config.http_timeout,
        follow_redirects=True,
    )


async def fetch_json(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Any:
    """
    Performs a request and returns the decoded JSON body.

    The body is streamed and capped at 1 MB.

    Args:
        client: The HTTP client.
        method: HTTP method.
        url: Target URL.
        **kwargs: Passed through to `client.stream` (headers, data, json).

    Returns:
        Any: The decoded JSON document.

    Raises:
        OversizedResponseError: If the body exceeds the cap.
        UpstreamError: On transport failure, error status or invalid JSON.
    """
    try:
        async with client.stream(method, url, **kwargs) as response:
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_RESPONSE_BYTES:
                raise OversizedResponseError(f"Response from {url} too large")

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > MAX_RESPONSE_BYTES:
                    raise OversizedResponseError(f"Response from {url} too large")

            if response.status_code >= 400:
                logger.error(f"IdP request {method} {url} returned {response.status_code}")
                raise UpstreamError(f"Request to {url} failed with status {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"IdP request {method} {url} failed: {e!r}")
        raise UpstreamError(f"Request to {url} failed: {e}") from e

    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UpstreamError(f"Invalid JSON response from {url}") from e
