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
Redirect Orchestrator: callback addressing and the outbound authorize redirect.
"""

from urllib.parse import quote

import httpx

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import MissingMethodError, SSODisabledError
from coreason_sso.models import FlowAttempt, FlowStage, SSORequest
from coreason_sso.providers import get_provider
from coreason_sso.state_cache import StateCache
from coreason_sso.utils.logger import logger


def callback_uri(api_url: str, compatibility: bool, method: str) -> str:
    """
    The URI the provider redirects back to.

    Compatibility mode addresses the method as a path segment, standard mode
    as a query parameter on the shared callback route.
    """
    base = api_url.rstrip("/")
    if compatibility:
        return f"{base}/api/auth/{method}"
    return f"{base}/api/auth/sso_callback?method={quote(method, safe='')}"


class RedirectOrchestrator:
    """
    Builds the authorize redirect for the configured platform.

    Attributes:
        config (SSOConfig): The gateway configuration.
        client (httpx.AsyncClient): Client for OIDC discovery.
        state_cache (StateCache): Store for anti-CSRF state tokens.
    """

    def __init__(self, config: SSOConfig, client: httpx.AsyncClient, state_cache: StateCache) -> None:
        self.config = config
        self.client = client
        self.state_cache = state_cache

    async def authorize_url(self, request: SSORequest, flow: FlowAttempt | None = None) -> str:
        """
        Computes the provider authorize URL for the request.

        Args:
            request: The inbound redirect request (`method` query parameter required).
            flow: Attempt tracker, advanced to AUTHORIZING on success.

        Returns:
            str: The URL to redirect the browser to.

        Raises:
            SSODisabledError: If SSO is disabled.
            MissingMethodError: If `method` is blank.
            InvalidPlatformError: If the configured platform is unknown.
            UpstreamError: If OIDC discovery fails.
        """
        if not self.config.login_enabled:
            raise SSODisabledError("SSO login is not enabled")

        method = request.param("method").strip()
        if not method:
            raise MissingMethodError("No method provided")

        provider = get_provider(self.config, self.client)
        redirect_uri = callback_uri(request.base_url, self.config.compatibility_mode, method)
        await provider.prepare(request, redirect_uri, method)

        state = None
        if provider.uses_state_cache:
            state = self.state_cache.generate_state(self.config.client_id, request.client_ip)

        url = await provider.build_authorize_url(redirect_uri, state)
        if flow is not None:
            flow.advance(FlowStage.AUTHORIZING)
        logger.info(f"Redirecting to {provider.platform} for SSO method {method}")
        return url
