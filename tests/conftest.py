# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

import time
from collections.abc import AsyncGenerator, Callable
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from authlib.jose import JsonWebKey, jwt

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import UsernameConflictError, UserNotFoundError
from coreason_sso.models import LocalUser, Platform
from coreason_sso.transport import build_http_client

API_URL = "https://files.example.com"
ISSUER = "https://idp.example.com"
CLIENT_IP = "203.0.113.7"


class FakeUserStore:
    """In-memory user store enforcing unique usernames."""

    def __init__(self) -> None:
        self.users: dict[str, LocalUser] = {}
        self.create_calls: list[str] = []

    async def get_user_by_sso_id(self, sso_id: str) -> LocalUser:
        for user in self.users.values():
            if user.sso_id == sso_id:
                return user
        raise UserNotFoundError("record not found")

    async def create_user(self, user: LocalUser) -> None:
        self.create_calls.append(user.username)
        if user.username in self.users:
            raise UsernameConflictError("UNIQUE constraint failed: users.username")
        self.users[user.username] = user


class FakeSessionSigner:
    def __init__(self) -> None:
        self.issued_for: list[str] = []

    async def generate_token(self, user: LocalUser) -> str:
        self.issued_for.append(user.username)
        return f"session-{user.username}"


class FakeSettings:
    def __init__(self, values: dict[str, str]) -> None:
        self.values = values

    def get(self, key: str) -> str | None:
        return self.values.get(key)


class IdPRouter:
    """
    Routes requests of an `httpx.MockTransport` by (method, url-without-query)
    and records every request it sees.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, response: Any, status_code: int = 200) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, json=response)

        self.routes[(method, url)] = handler

    def add_handler(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, url)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        if key not in self.routes:
            return httpx.Response(404, json={"error": "not_found"})
        return self.routes[key](request)

    def last(self, method: str, url: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method and str(request.url).split("?")[0] == url:
                return request
        raise AssertionError(f"no {method} {url} request recorded")


def query_of(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture
def user_store() -> FakeUserStore:
    return FakeUserStore()


@pytest.fixture
def signer() -> FakeSessionSigner:
    return FakeSessionSigner()


@pytest.fixture
def router() -> IdPRouter:
    return IdPRouter()


@pytest.fixture
def make_config() -> Callable[..., SSOConfig]:
    def _make(**overrides: Any) -> SSOConfig:
        values: dict[str, Any] = {
            "login_enabled": True,
            "login_platform": Platform.GITHUB,
            "client_id": "client-123",
            "client_secret": "s3cret",
            "auto_register": True,
            "default_permission": 7,
            "default_dir": "/sso",
            "http_retries": 1,
        }
        values.update(overrides)
        return SSOConfig(**values)

    return _make


@pytest_asyncio.fixture
async def http_client(router: IdPRouter) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = build_http_client(SSOConfig(http_retries=1), transport=httpx.MockTransport(router))
    yield client
    await client.aclose()


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture
def make_id_token(rsa_key: Any) -> Callable[..., str]:
    def _make(key: Any = None, **claims: Any) -> str:
        signing_key = key or rsa_key
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "aud": "client-123",
            "sub": "oidc-sub-1",
            "name": "alice",
            "iat": now,
            "exp": now + 600,
        }
        payload.update(claims)
        header = {"alg": "RS256", "kid": signing_key.as_dict()["kid"]}
        return jwt.encode(header, payload, signing_key).decode("utf-8")  # type: ignore[no-any-return]

    return _make


@pytest.fixture
def oidc_idp(router: IdPRouter, rsa_key: Any) -> IdPRouter:
    """Registers discovery and JWKS endpoints of a healthy OIDC issuer."""
    router.add(
        "GET",
        f"{ISSUER}/.well-known/openid-configuration",
        {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
            "jwks_uri": f"{ISSUER}/jwks",
        },
    )
    router.add("GET", f"{ISSUER}/jwks", {"keys": [rsa_key.as_dict(is_private=False)]})
    return router
