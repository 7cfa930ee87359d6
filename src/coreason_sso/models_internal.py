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
Internal data models for the coreason-sso package.
These are not exposed in the public API.
"""

from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class OIDCDiscovery(BaseModel):
    """
    OIDC Configuration from .well-known/openid-configuration.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str = Field(..., description="The OIDC issuer URL.")
    authorization_endpoint: str = Field(..., description="The authorization endpoint URL.")
    token_endpoint: str = Field(..., description="The token endpoint URL.")
    jwks_uri: str = Field(..., description="The URL to the JWKS.")
    userinfo_endpoint: str | None = Field(default=None, description="The userinfo endpoint URL.")
    id_token_signing_alg_values_supported: list[str] = Field(default_factory=lambda: ["RS256"])
    token_endpoint_auth_methods_supported: list[str] | None = Field(
        default=None, description="Client authentication methods accepted by the token endpoint."
    )

    @property
    def token_auth_basic(self) -> bool:
        """
        Whether the client authenticates with HTTP Basic at the token endpoint.

        An absent list means `client_secret_basic`, the OIDC default. Credentials
        go in the form body only when the provider advertises `client_secret_post`
        without `client_secret_basic`.
        """
        methods = self.token_endpoint_auth_methods_supported
        if not methods or "client_secret_basic" in methods:
            return True
        return "client_secret_post" not in methods


class OIDCClientConfig(BaseModel):
    """
    OAuth2 client settings for one OIDC request, rebuilt from live discovery.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: SecretStr
    redirect_uri: str
    scopes: list[str]
    method: str
    discovery: OIDCDiscovery

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        endpoint = self.discovery.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"
