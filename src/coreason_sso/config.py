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
Configuration for the coreason-sso package.
"""

from typing import Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_sso.interfaces import SettingsProvider
from coreason_sso.models import Platform

# Settings-provider key -> SSOConfig field
SETTING_KEYS: dict[str, str] = {
    "SSOLoginEnabled": "login_enabled",
    "SSOCompatibilityMode": "compatibility_mode",
    "SSOLoginPlatform": "login_platform",
    "SSOClientId": "client_id",
    "SSOClientSecret": "client_secret",
    "SSOEndpointName": "endpoint_name",
    "SSOExtraScopes": "extra_scopes",
    "SSOAutoRegister": "auto_register",
    "SSODefaultPermission": "default_permission",
    "SSODefaultDir": "default_dir",
    "SSOOIDCUsernameKey": "oidc_username_key",
}

BASELINE_SCOPES: tuple[str, ...] = ("openid", "profile")

_TRUE_VALUES = {"true", "1", "yes", "on"}


class SSOConfig(BaseSettings):
    """
    Immutable configuration for the SSO gateway.

    Built once per process (or settings reload) and passed explicitly to every
    component. Values come from `COREASON_SSO_*` environment variables or from
    the host's settings store via `from_settings`.

    Attributes:
        login_enabled (bool): Master switch for SSO login.
        compatibility_mode (bool): Use legacy path-based callbacks and redirect delivery.
        login_platform (Platform | None): The active identity platform. None when unset or unknown.
        client_id (str): OAuth2 client id registered with the platform.
        client_secret (SecretStr): OAuth2 client secret.
        endpoint_name (str): OIDC issuer URL, or the Casdoor base URL.
        extra_scopes (str): Space-delimited scopes added to `openid profile` for OIDC.
        auto_register (bool): Create local accounts for unknown external identities.
        default_permission (int): Permission bits for auto-registered users.
        default_dir (str): Base path for auto-registered users.
        oidc_username_key (str): ID token claim holding the username.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_SSO_",
        case_sensitive=False,
        frozen=True,
    )

    login_enabled: bool = False
    compatibility_mode: bool = False
    login_platform: Platform | None = None
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    endpoint_name: str = ""
    extra_scopes: str = ""
    auto_register: bool = False
    default_permission: int = 0
    default_dir: str = "/"
    oidc_username_key: str = "name"

    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for each IdP request.")
    http_retries: int = Field(default=3, ge=1, le=10, description="Attempts per IdP request for transient failures.")
    flow_timeout: float = Field(
        default=30.0, gt=0, le=120, description="Upper bound for one redirect or callback leg, in seconds."
    )
    state_ttl: float = Field(default=300.0, gt=0, description="Lifetime of an OIDC state token, in seconds.")
    native_state_check: bool = False
    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256", "RS384", "RS512", "ES256", "ES384", "PS256"]
    )
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("login_platform", mode="before")
    @classmethod
    def parse_platform(cls, v: Any) -> Platform | None:
        """
        Maps the platform name to the enum; unknown names become None so the
        redirect can answer "invalid platform" instead of failing to load.
        """
        if v is None or isinstance(v, Platform):
            return v
        try:
            return Platform(str(v).strip())
        except ValueError:
            return None

    @field_validator("oidc_username_key", mode="after")
    @classmethod
    def default_username_key(cls, v: str) -> str:
        return v.strip() or "name"

    @property
    def scopes(self) -> list[str]:
        """Baseline OIDC scopes followed by the operator's extra scopes."""
        scopes = list(BASELINE_SCOPES)
        for scope in self.extra_scopes.split(" "):
            if scope and scope not in scopes:
                scopes.append(scope)
        return scopes

    @property
    def endpoint_base(self) -> str:
        return self.endpoint_name.strip().rstrip("/")

    @classmethod
    def from_settings(cls, provider: SettingsProvider, **overrides: Any) -> "SSOConfig":
        """
        Builds a config from the host's string-keyed settings store.

        Args:
            provider: The settings collaborator.
            **overrides: Extra field values (e.g. `http_timeout`).

        Returns:
            SSOConfig: A frozen configuration value.
        """
        values: dict[str, Any] = {}
        for key, field_name in SETTING_KEYS.items():
            raw = provider.get(key)
            if raw is None:
                continue
            values[field_name] = _coerce(field_name, raw)
        values.update(overrides)
        return cls(**values)


def _coerce(field_name: str, raw: str) -> Any:
    annotation = SSOConfig.model_fields[field_name].annotation
    if annotation is bool:
        return str(raw).strip().lower() in _TRUE_VALUES
    if annotation is int:
        try:
            return int(str(raw).strip())
        except ValueError:
            return 0
    return raw
