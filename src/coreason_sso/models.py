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
Data models for the coreason-sso package.
"""

import json
from enum import IntEnum, StrEnum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field

from coreason_sso.exceptions import CoreasonSSOError


class Platform(StrEnum):
    GITHUB = "Github"
    MICROSOFT = "Microsoft"
    GOOGLE = "Google"
    DINGTALK = "Dingtalk"
    CASDOOR = "Casdoor"
    OIDC = "OIDC"


class CallbackMethod(StrEnum):
    GET_SSO_ID = "get_sso_id"
    SSO_GET_TOKEN = "sso_get_token"


class BodyEncoding(StrEnum):
    JSON = "json"
    FORM = "form"


class UserRole(IntEnum):
    GENERAL = 0
    GUEST = 1
    ADMIN = 2


class FlowStage(StrEnum):
    INIT = "init"
    AUTHORIZING = "authorizing"
    CALLBACK_RECEIVED = "callback_received"
    STATE_VERIFIED = "state_verified"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    USER_FOUND = "user_found"
    USER_AUTO_REGISTERED = "user_auto_registered"
    DELIVERED = "delivered"
    FAILED = "failed"


_TRANSITIONS: dict[FlowStage, frozenset[FlowStage]] = {
    FlowStage.INIT: frozenset({FlowStage.AUTHORIZING, FlowStage.CALLBACK_RECEIVED}),
    FlowStage.AUTHORIZING: frozenset(),
    FlowStage.CALLBACK_RECEIVED: frozenset({FlowStage.STATE_VERIFIED, FlowStage.TOKEN_EXCHANGED}),
    FlowStage.STATE_VERIFIED: frozenset({FlowStage.TOKEN_EXCHANGED}),
    FlowStage.TOKEN_EXCHANGED: frozenset({FlowStage.IDENTITY_RESOLVED}),
    FlowStage.IDENTITY_RESOLVED: frozenset(
        {FlowStage.USER_FOUND, FlowStage.USER_AUTO_REGISTERED, FlowStage.DELIVERED}
    ),
    FlowStage.USER_FOUND: frozenset({FlowStage.DELIVERED}),
    FlowStage.USER_AUTO_REGISTERED: frozenset({FlowStage.DELIVERED}),
    FlowStage.DELIVERED: frozenset(),
    FlowStage.FAILED: frozenset(),
}


class FlowAttempt:
    """
    Tracks one login attempt through the SSO state machine.

    The redirect leg ends in AUTHORIZING, the callback leg starts from INIT again
    since both legs are separate HTTP requests. Any stage may fail; FAILED and
    DELIVERED are terminal.
    """

    def __init__(self) -> None:
        self.stage = FlowStage.INIT
        self.history: list[FlowStage] = [FlowStage.INIT]

    def advance(self, stage: FlowStage) -> None:
        if stage is FlowStage.FAILED:
            self.fail()
            return
        if stage not in _TRANSITIONS[self.stage]:
            raise CoreasonSSOError(f"Illegal SSO flow transition {self.stage} -> {stage}", status_code=500)
        self.stage = stage
        self.history.append(stage)

    def fail(self) -> None:
        if self.stage is not FlowStage.FAILED:
            self.stage = FlowStage.FAILED
            self.history.append(FlowStage.FAILED)

    @property
    def is_terminal(self) -> bool:
        return self.stage in (FlowStage.DELIVERED, FlowStage.FAILED)


class ProviderProfile(BaseModel):
    """
    Static descriptor of a native OAuth2 platform.

    URL fields may contain an `{endpoint}` placeholder, resolved against the
    configured endpoint base (Casdoor is self-hosted).
    """

    model_config = ConfigDict(frozen=True)

    name: Platform
    authorize_url: str
    token_url: str
    user_info_url: str
    scope: str
    auth_code_field: str = "code"
    user_id_field: str
    username_field: str
    body_encoding: BodyEncoding = BodyEncoding.FORM
    grant_type: str | None = None
    extra_authorize_params: tuple[tuple[str, str], ...] = ()
    extra_form_fields: tuple[tuple[str, str], ...] = ()


class AuthState(BaseModel):
    """An anti-CSRF state token bound to a client and the issuing IP."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    state_token: str
    issuing_ip: str
    expiry: float

    @property
    def key(self) -> str:
        return f"{self.client_id}_{self.state_token}"

    def is_valid_for(self, ip: str, now: float) -> bool:
        return now < self.expiry and self.issuing_ip == ip


class FederatedIdentity(BaseModel):
    """
    Identity asserted by the external provider. Never persisted as-is.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str
    external_username: str = ""
    platform: Platform

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return (
            f"FederatedIdentity(external_id='<REDACTED>', "
            f"external_username='<REDACTED>', "
            f"platform={self.platform!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class LocalUser(BaseModel):
    """The fields of the host's user record this package reads and writes."""

    id: int = 0
    username: str
    password: str = Field(default="", repr=False)
    permission: int = 0
    base_path: str = "/"
    role: UserRole = UserRole.GENERAL
    disabled: bool = False
    sso_id: str = ""


class SSORequest(BaseModel):
    """
    Framework-neutral view of an inbound redirect or callback request.

    Attributes:
        api_url (str): Public base URL of the API (scheme, host and optional prefix).
        client_ip (str): The resolved client IP.
        path (str): The request path, used for compatibility-mode callbacks.
        query (dict[str, str]): Query parameters (first value per key).
    """

    model_config = ConfigDict(frozen=True)

    api_url: str
    client_ip: str
    path: str = ""
    query: dict[str, str] = Field(default_factory=dict)

    def param(self, name: str) -> str:
        return self.query.get(name, "")

    def callback_method(self, compatibility: bool) -> str:
        """Compatibility callbacks carry the method as the last path segment."""
        if compatibility:
            return PurePosixPath(self.path).name
        return self.param("method")

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")


class SSOResponse(BaseModel):
    """Framework-neutral response handed back to the routing layer."""

    status_code: int = 200
    location: str | None = None
    body: str = ""
    media_type: str = "text/html; charset=utf-8"
    stage: FlowStage | None = None

    @classmethod
    def redirect(cls, location: str) -> "SSOResponse":
        return cls(status_code=302, location=location, body="", media_type="text/plain; charset=utf-8")

    @classmethod
    def html(cls, document: str) -> "SSOResponse":
        return cls(status_code=200, body=document)

    @classmethod
    def error(cls, exc: CoreasonSSOError) -> "SSOResponse":
        payload = {"code": exc.status_code, "message": exc.message, "data": None}
        return cls(
            status_code=exc.status_code,
            body=json.dumps(payload),
            media_type="application/json",
        )

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": self.media_type}
        if self.location is not None:
            headers["Location"] = self.location
        return headers
