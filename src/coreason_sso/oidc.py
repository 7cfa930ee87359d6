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
Generic OpenID Connect support: discovery-driven client factory and the OIDC
provider variant.
"""

import httpx
from pydantic import ValidationError

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import (
    ConfigurationError,
    IdentityResolutionError,
    MissingIDTokenError,
    UpstreamError,
)
from coreason_sso.id_token import IDTokenVerifier, parse_jwt_payload
from coreason_sso.models import FederatedIdentity, Platform, SSORequest
from coreason_sso.models_internal import OIDCClientConfig, OIDCDiscovery
from coreason_sso.providers import SSOProvider, json_field_str
from coreason_sso.redirect import callback_uri
from coreason_sso.transport import fetch_json
from coreason_sso.utils.logger import logger

DISCOVERY_PATH = "/.well-known/openid-configuration"


class OIDCClientFactory:
    """
    Builds per-request OAuth2 client settings from live provider discovery.

    Discovery is not cached: every redirect and callback re-reads the issuer's
    metadata, so a rotated configuration takes effect immediately.
    """

    def __init__(self, config: SSOConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client

    @property
    def discovery_url(self) -> str:
        return f"{self.config.endpoint_base}{DISCOVERY_PATH}"

    async def discover(self) -> OIDCDiscovery:
        """
        Fetches the provider metadata.

        Raises:
            ConfigurationError: If no issuer is configured.
            UpstreamError: If the document cannot be fetched or is invalid.
        """
        if not self.config.endpoint_base:
            raise ConfigurationError("OIDC issuer endpoint is not configured")

        data = await fetch_json(self.client, "GET", self.discovery_url, headers={"Accept": "application/json"})
        if not isinstance(data, dict):
            raise UpstreamError(f"Invalid OIDC configuration from {self.discovery_url}")
        try:
            discovery = OIDCDiscovery(**data)
        except ValidationError as e:
            logger.error(f"Invalid OIDC discovery document from {self.discovery_url}")
            raise UpstreamError(f"Invalid OIDC configuration from {self.discovery_url}: {e}") from e

        logger.debug(f"Discovered OIDC provider {discovery.issuer}")
        return discovery

    async def build_client(
        self,
        request: SSORequest,
        compatibility: bool,
        redirect_uri: str,
        method: str,
    ) -> OIDCClientConfig:
        """
        Builds the client settings for one request.

        Args:
            request: The inbound request (supplies the API base URL).
            compatibility: Callback addressing mode.
            redirect_uri: Callback URI; computed from `method` when blank.
            method: The callback method.

        Returns:
            OIDCClientConfig: Client id/secret, redirect URI, scopes and endpoints.
        """
        if not redirect_uri:
            redirect_uri = callback_uri(request.base_url, compatibility, method)
        discovery = await self.discover()
        return OIDCClientConfig(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            redirect_uri=redirect_uri,
            scopes=self.config.scopes,
            method=method,
            discovery=discovery,
        )


class OIDCProvider(SSOProvider):
    """
    The provider variant whose endpoints come from discovery. The identity is
    taken from the verified ID token instead of a user-info call.
    """

    platform = Platform.OIDC

    def __init__(self, config: SSOConfig, client: httpx.AsyncClient) -> None:
        super().__init__(config, client)
        self.factory = OIDCClientFactory(config, client)
        self._session: OIDCClientConfig | None = None

    @property
    def uses_state_cache(self) -> bool:
        return True

    async def prepare(self, request: SSORequest, redirect_uri: str, method: str) -> None:
        self._session = await self.factory.build_client(
            request, self.config.compatibility_mode, redirect_uri, method
        )

    def session(self, redirect_uri: str) -> OIDCClientConfig:
        if self._session is None or self._session.redirect_uri != redirect_uri:
            raise ConfigurationError("OIDC client used before discovery")
        return self._session

    async def build_authorize_url(self, redirect_uri: str, state: str | None = None) -> str:
        if not state:
            raise ConfigurationError("OIDC authorization requires a state token")
        return self.session(redirect_uri).authorization_url(state)

    async def exchange_token(self, code: str, redirect_uri: str) -> str:
        """
        Standard authorization-code exchange; returns the raw ID token.

        Raises:
            MissingIDTokenError: If the response has no `id_token`.
        """
        client_config = self.session(redirect_uri)
        secret = client_config.client_secret.get_secret_value()
        data = {"grant_type": "authorization_code", "code": code, "redirect_uri": client_config.redirect_uri}
        auth: httpx.BasicAuth | None = None
        if client_config.discovery.token_auth_basic:
            auth = httpx.BasicAuth(client_config.client_id, secret)
        else:
            data["client_id"] = client_config.client_id
            data["client_secret"] = secret

        document = await fetch_json(
            self.client,
            "POST",
            client_config.discovery.token_endpoint,
            data=data,
            auth=auth,
            headers={"Accept": "application/json"},
        )
        id_token = document.get("id_token") if isinstance(document, dict) else None
        if not isinstance(id_token, str) or not id_token:
            logger.error("OIDC token response did not contain an id_token")
            raise MissingIDTokenError("no id_token in token response")
        return id_token

    async def fetch_identity(self, credential: str) -> FederatedIdentity:
        """
        Verifies the ID token, then reads the configured username claim from
        its payload. The claim value is both the external id and the username.
        """
        payload = parse_jwt_payload(credential)

        if self._session is None:
            raise ConfigurationError("OIDC identity requested before token exchange")
        verifier = IDTokenVerifier(
            self._session.discovery,
            self.client,
            client_id=self.config.client_id,
            allowed_algorithms=self.config.allowed_algorithms,
        )
        await verifier.verify(credential)

        username = json_field_str(payload, self.config.oidc_username_key)
        if not username:
            raise IdentityResolutionError("Unable to get username from OIDC provider")
        return FederatedIdentity(external_id=username, external_username=username, platform=self.platform)
