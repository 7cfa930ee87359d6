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
SSOGateway component orchestrating the redirect and callback legs of a login.
"""

from typing import Any

import anyio
import httpx
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode

from coreason_sso.config import SSOConfig
from coreason_sso.delivery import SessionIssuer, render_error, render_sso_id, render_token
from coreason_sso.exceptions import (
    CoreasonSSOError,
    InvalidMethodError,
    InvalidStateError,
    MissingCodeError,
    PersistenceError,
    SSODisabledError,
    UpstreamError,
    UserNotFoundError,
)
from coreason_sso.interfaces import SessionSigner, UserStore
from coreason_sso.models import (
    CallbackMethod,
    FederatedIdentity,
    FlowAttempt,
    FlowStage,
    LocalUser,
    SSORequest,
    SSOResponse,
)
from coreason_sso.providers import get_provider
from coreason_sso.redirect import RedirectOrchestrator, callback_uri
from coreason_sso.registration import AutoRegistrar
from coreason_sso.state_cache import StateCache
from coreason_sso.transport import build_http_client
from coreason_sso.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

CALLBACK_METHODS = frozenset(m.value for m in CallbackMethod)


class SSOGateway:
    """
    Async SSO gateway (The Core).
    Handles resources via async context manager.

    Attributes:
        config (SSOConfig): The gateway configuration.
        state_cache (StateCache): Shared store of anti-CSRF state tokens.
    """

    def __init__(
        self,
        config: SSOConfig,
        user_store: UserStore,
        session_signer: SessionSigner,
        state_cache: StateCache | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the SSOGateway.

        Args:
            config: The configuration value.
            user_store: Host user persistence.
            session_signer: Host session token signer.
            state_cache: State store (optional). Defaults to an in-process cache
                using `config.state_ttl`; multi-instance deployments pass a shared one.
            client: External async client (optional). If not provided, a client
                with the retrying transport is created and owned by the gateway.
        """
        self.config = config
        self.user_store = user_store
        self.state_cache = state_cache or StateCache(ttl=config.state_ttl)
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            self._client = build_http_client(config)
            HTTPXClientInstrumentor().instrument_client(self._client)

        self.orchestrator = RedirectOrchestrator(config, self._client, self.state_cache)
        self.registrar = AutoRegistrar(config, user_store)
        self.session_issuer = SessionIssuer(session_signer)

    async def __aenter__(self) -> "SSOGateway":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def login_redirect(self, request: SSORequest) -> SSOResponse:
        """
        Handles `GET <redirect-entry>?method=<method>`, bounded by `config.flow_timeout`.

        Returns:
            SSOResponse: A 302 to the provider, or a structured error.
        """
        flow = FlowAttempt()
        with tracer.start_as_current_span("sso_redirect") as span:
            try:
                with anyio.fail_after(self.config.flow_timeout):
                    url = await self.orchestrator.authorize_url(request, flow)
            except TimeoutError:
                error = UpstreamError(f"SSO redirect timed out after {self.config.flow_timeout}s")
                return self._failure(error, flow, span)
            except Exception as e:
                return self._failure(e, flow, span)
            span.set_status(Status(StatusCode.OK))
            return SSOResponse.redirect(url).model_copy(update={"stage": flow.stage})

    async def login_callback(self, request: SSORequest) -> SSOResponse:
        """
        Handles the provider callback, in either addressing mode.

        The whole callback, provider round trips included, is bounded by
        `config.flow_timeout`.

        Returns:
            SSOResponse: The delivered `sso_id` or session token, or a structured error.
        """
        flow = FlowAttempt()
        with tracer.start_as_current_span("sso_callback") as span:
            try:
                with anyio.fail_after(self.config.flow_timeout):
                    response = await self._callback(request, flow)
            except TimeoutError:
                error = UpstreamError(f"SSO login timed out after {self.config.flow_timeout}s")
                return self._failure(error, flow, span)
            except Exception as e:
                return self._failure(e, flow, span)
            span.set_status(Status(StatusCode.OK))
            return response.model_copy(update={"stage": flow.stage})

    async def _callback(self, request: SSORequest, flow: FlowAttempt) -> SSOResponse:
        if not self.config.login_enabled:
            raise SSODisabledError("SSO login is disabled")

        compatibility = self.config.compatibility_mode
        method = request.callback_method(compatibility)
        if method not in CALLBACK_METHODS:
            raise InvalidMethodError("Invalid request")

        provider = get_provider(self.config, self._client)
        flow.advance(FlowStage.CALLBACK_RECEIVED)

        redirect_uri = callback_uri(request.base_url, compatibility, method)
        await provider.prepare(request, redirect_uri, method)

        if provider.uses_state_cache:
            if not self.state_cache.verify_state(self.config.client_id, request.client_ip, request.param("state")):
                raise InvalidStateError("State parameter is invalid or expired")
            flow.advance(FlowStage.STATE_VERIFIED)

        code = request.param(provider.auth_code_field)
        if not code:
            raise MissingCodeError("No code provided")

        credential = await provider.exchange_token(code, redirect_uri)
        flow.advance(FlowStage.TOKEN_EXCHANGED)

        identity = await provider.fetch_identity(credential)
        flow.advance(FlowStage.IDENTITY_RESOLVED)
        user_hash = anonymize(identity.external_id, self.config.pii_salt)
        span = trace.get_current_span()
        span.set_attribute("enduser.id", user_hash)
        span.set_attribute("sso.platform", str(identity.platform))
        span.set_attribute("sso.method", method)
        logger.info(f"Resolved {identity.platform} identity {user_hash}")

        if method == CallbackMethod.GET_SSO_ID:
            response = render_sso_id(request.base_url, identity.external_id, compatibility)
            flow.advance(FlowStage.DELIVERED)
            return response

        user = await self._resolve_user(identity, flow)
        token = await self.session_issuer.issue(user)
        response = render_token(request.base_url, token, compatibility)
        flow.advance(FlowStage.DELIVERED)
        return response

    async def _resolve_user(self, identity: FederatedIdentity, flow: FlowAttempt) -> LocalUser:
        try:
            user = await self.user_store.get_user_by_sso_id(identity.external_id)
        except UserNotFoundError as e:
            user = await self.registrar.register(identity, e)
            flow.advance(FlowStage.USER_AUTO_REGISTERED)
            return user
        except CoreasonSSOError:
            raise
        except Exception as e:
            raise PersistenceError(f"User lookup failed: {e}") from e
        flow.advance(FlowStage.USER_FOUND)
        return user

    def _failure(self, exc: Exception, flow: FlowAttempt, span: trace.Span) -> SSOResponse:
        flow.fail()
        span.record_exception(exc)
        span.set_status(Status(StatusCode.ERROR, str(exc)))
        if isinstance(exc, CoreasonSSOError):
            if exc.status_code >= 500:
                logger.error(f"SSO login failed: {exc.message}")
            else:
                logger.warning(f"SSO login rejected: {exc.message}")
            error = exc
        else:
            logger.opt(exception=exc).error("Unexpected error during SSO login")
            error = CoreasonSSOError(f"Unexpected error during SSO login: {exc}", status_code=500)
        return render_error(error).model_copy(update={"stage": flow.stage})
