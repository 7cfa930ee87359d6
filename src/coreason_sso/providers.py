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
Identity provider variants sharing one capability set:
authorize URL, code-for-token exchange and identity fetch.
"""

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlencode

import httpx

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import IdentityResolutionError, UpstreamError
from coreason_sso.models import FederatedIdentity, Platform, ProviderProfile, SSORequest
from coreason_sso.registry import get_profile
from coreason_sso.transport import fetch_json

EMPTY_IDENTIFIERS = frozenset({"", "0"})


def json_field_str(document: Any, field: str) -> str:
    """
    Reads a top-level field as a string. Numbers are rendered without a
    fractional part when integral (Github ids are integers); missing, null and
    nested values read as "".
    """
    if not isinstance(document, dict):
        return ""
    value = document.get(field)
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class SSOProvider(ABC):
    """
    One identity platform.

    Attributes:
        config (SSOConfig): The gateway configuration.
        client (httpx.AsyncClient): Client used for every outbound call.
    """

    platform: Platform

    def __init__(self, config: SSOConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client

    @property
    def auth_code_field(self) -> str:
        return "code"

    @property
    def uses_state_cache(self) -> bool:
        """Whether redirect and callback go through the State Cache."""
        return self.config.native_state_check

    async def prepare(self, request: SSORequest, redirect_uri: str, method: str) -> None:
        """Per-request setup before the other calls. Static platforms need none."""

    @abstractmethod
    async def build_authorize_url(self, redirect_uri: str, state: str | None = None) -> str: ...

    @abstractmethod
    async def exchange_token(self, code: str, redirect_uri: str) -> str:
        """Exchanges the authorization code; returns the credential used by `fetch_identity`."""

    @abstractmethod
    async def fetch_identity(self, credential: str) -> FederatedIdentity: ...


class NativeProvider(SSOProvider):
    """
    A hand-integrated OAuth2 platform described by a `ProviderProfile`:
    form-encoded token request, Bearer user-info request.
    """

    def __init__(self, config: SSOConfig, client: httpx.AsyncClient, profile: ProviderProfile) -> None:
        super().__init__(config, client)
        self.profile = profile
        self.platform = profile.name

    @property
    def auth_code_field(self) -> str:
        return self.profile.auth_code_field

    def authorize_params(self, redirect_uri: str, state: str | None) -> dict[str, str]:
        params = {
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "client_id": self.config.client_id,
            "scope": self.profile.scope,
        }
        params.update(self.profile.extra_authorize_params)
        if state:
            params["state"] = state
        return params

    async def build_authorize_url(self, redirect_uri: str, state: str | None = None) -> str:
        return f"{self.profile.authorize_url}?{urlencode(self.authorize_params(redirect_uri, state))}"

    def token_request(self, code: str, redirect_uri: str) -> dict[str, Any]:
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret.get_secret_value(),
            "code": code,
            "redirect_uri": redirect_uri,
            "scope": self.profile.scope,
        }
        if self.profile.grant_type:
            data["grant_type"] = self.profile.grant_type
        data.update(self.profile.extra_form_fields)
        return {"data": data, "headers": {"Accept": "application/json"}}

    def access_token_from(self, document: Any) -> str:
        return json_field_str(document, "access_token")

    def user_info_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    async def exchange_token(self, code: str, redirect_uri: str) -> str:
        document = await fetch_json(
            self.client, "POST", self.profile.token_url, **self.token_request(code, redirect_uri)
        )
        access_token = self.access_token_from(document)
        if not access_token:
            error = json_field_str(document, "error_description") or json_field_str(document, "error")
            raise UpstreamError(f"{self.platform} token response has no access token: {error or 'unknown error'}")
        return access_token

    async def fetch_identity(self, credential: str) -> FederatedIdentity:
        document = await fetch_json(
            self.client, "GET", self.profile.user_info_url, headers=self.user_info_headers(credential)
        )
        external_id = json_field_str(document, self.profile.user_id_field)
        if external_id in EMPTY_IDENTIFIERS:
            raise IdentityResolutionError(f"Unable to get user id from {self.platform}")
        return FederatedIdentity(
            external_id=external_id,
            external_username=json_field_str(document, self.profile.username_field),
            platform=self.platform,
        )


class DingtalkProvider(NativeProvider):
    """Dingtalk takes a camelCase JSON token request and its own token header."""

    def token_request(self, code: str, redirect_uri: str) -> dict[str, Any]:
        return {
            "json": {
                "clientId": self.config.client_id,
                "clientSecret": self.config.client_secret.get_secret_value(),
                "code": code,
                "grantType": self.profile.grant_type,
            },
            "headers": {"Accept": "application/json"},
        }

    def access_token_from(self, document: Any) -> str:
        return json_field_str(document, "accessToken")

    def user_info_headers(self, access_token: str) -> dict[str, str]:
        return {"x-acs-dingtalk-access-token": access_token, "Accept": "application/json"}


class CasdoorProvider(NativeProvider):
    """Casdoor is self-hosted; its authorize request carries the endpoint as `state`."""

    async def build_authorize_url(self, redirect_uri: str, state: str | None = None) -> str:
        return await super().build_authorize_url(redirect_uri, state or self.config.endpoint_base)


_NATIVE_VARIANTS: dict[Platform, type[NativeProvider]] = {
    Platform.DINGTALK: DingtalkProvider,
    Platform.CASDOOR: CasdoorProvider,
}


def get_provider(config: SSOConfig, client: httpx.AsyncClient) -> SSOProvider:
    """
    Resolves the configured platform to its provider variant.

    Raises:
        InvalidPlatformError: If the platform is unset or unknown.
    """
    if config.login_platform is Platform.OIDC:
        from coreason_sso.oidc import OIDCProvider

        return OIDCProvider(config, client)

    profile = get_profile(config.login_platform, config.endpoint_base)
    variant = _NATIVE_VARIANTS.get(profile.name, NativeProvider)
    return variant(config, client, profile)
