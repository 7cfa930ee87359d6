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
Custom exceptions for the coreason-sso package.

Every exception carries the HTTP status the gateway answers with.
"""


class CoreasonSSOError(Exception):
    """Base exception for all coreason-sso errors."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(CoreasonSSOError):
    """Raised when the request cannot be served with the current configuration."""


class SSODisabledError(ConfigurationError):
    """Raised when SSO login is globally disabled."""

    status_code = 403


class InvalidPlatformError(ConfigurationError):
    """Raised when the configured login platform is not recognised."""


class MissingMethodError(ConfigurationError):
    """Raised when the `method` parameter is missing or blank."""


class InvalidMethodError(ConfigurationError):
    """Raised when the callback `method` is neither `get_sso_id` nor `sso_get_token`."""


class UpstreamError(CoreasonSSOError):
    """Raised when an identity provider call fails (discovery, token exchange, user info)."""


class OversizedResponseError(UpstreamError):
    """Raised when an HTTP response is too large."""


class FlowValidationError(CoreasonSSOError):
    """
    Raised when callback data fails validation.
    The flow is aborted and must be restarted from the authorize redirect.
    """


class InvalidStateError(FlowValidationError):
    """Raised when the anti-CSRF state is unknown, expired or bound to another IP."""


class MissingCodeError(FlowValidationError):
    """Raised when the callback carries no authorization code."""


class MissingIDTokenError(FlowValidationError):
    """Raised when an OIDC token response has no `id_token`."""


class MalformedTokenError(FlowValidationError):
    """Raised when an identity token is structurally invalid."""


class TokenVerificationError(FlowValidationError):
    """Raised when an identity token fails issuer, audience, expiry or signature checks."""


class IdentityResolutionError(FlowValidationError):
    """Raised when no usable external identifier or username could be resolved."""


class UserNotFoundError(CoreasonSSOError):
    """Raised by the user store when no user is linked to the SSO id."""


class PersistenceError(CoreasonSSOError):
    """Raised by the user store for failures other than a missing record."""

    status_code = 500


class UsernameConflictError(PersistenceError):
    """Raised by the user store when the username is already taken."""


class SessionIssueError(CoreasonSSOError):
    """Raised when the session signer cannot mint a token."""

    status_code = 500
