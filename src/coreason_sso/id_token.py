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
Verification and decoding of OIDC identity tokens.
"""

import base64
import binascii
import json
import re
from typing import Any, cast

import httpx
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    DecodeError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)

from coreason_sso.exceptions import MalformedTokenError, TokenVerificationError, UpstreamError
from coreason_sso.models_internal import OIDCDiscovery
from coreason_sso.transport import fetch_json
from coreason_sso.utils.logger import logger

BASE64URL_SEGMENT = re.compile(r"[A-Za-z0-9_-]*")


def parse_jwt_payload(raw: str) -> dict[str, Any]:
    """
    Decodes the payload segment of a JWT without verifying it.

    Args:
        raw: The compact-serialized token.

    Returns:
        dict[str, Any]: The payload claims.

    Raises:
        MalformedTokenError: If the token has fewer than two segments or the
            payload is not an unpadded base64url-encoded JSON object.
    """
    parts = raw.split(".")
    if len(parts) < 2:
        raise MalformedTokenError(f"oidc: malformed jwt, expected 3 parts got {len(parts)}")

    segment = parts[1]
    if not BASE64URL_SEGMENT.fullmatch(segment):
        raise MalformedTokenError("oidc: malformed jwt payload: not unpadded base64url")
    try:
        decoded = base64.b64decode(segment + "=" * (-len(segment) % 4), altchars=b"-_", validate=True)
        payload = json.loads(decoded)
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError(f"oidc: malformed jwt payload: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedTokenError("oidc: malformed jwt payload: not a JSON object")
    return payload


class IDTokenVerifier:
    """
    Verifies ID token signature, issuer, audience and expiry against the
    provider's published keys.

    Attributes:
        discovery (OIDCDiscovery): The provider metadata.
        client_id (str): Expected audience.
        allowed_algorithms (list[str]): Accepted signing algorithms.
    """

    def __init__(
        self,
        discovery: OIDCDiscovery,
        client: httpx.AsyncClient,
        client_id: str,
        allowed_algorithms: list[str],
        leeway: int = 60,
    ) -> None:
        self.discovery = discovery
        self.client = client
        self.client_id = client_id
        self.allowed_algorithms = allowed_algorithms
        self.leeway = leeway
        self.jwt = JsonWebToken(allowed_algorithms)

    async def _fetch_jwks(self) -> dict[str, Any]:
        jwks = await fetch_json(self.client, "GET", self.discovery.jwks_uri)
        if not isinstance(jwks, dict) or "keys" not in jwks:
            raise UpstreamError(f"Invalid JWKS from {self.discovery.jwks_uri}")
        return cast("dict[str, Any]", jwks)

    async def verify(self, raw: str) -> dict[str, Any]:
        """
        Verifies the token and returns its claims.

        Raises:
            MalformedTokenError: If the token cannot be decoded.
            TokenVerificationError: If a check fails.
            UpstreamError: If the JWKS cannot be fetched.
        """
        jwks = await self._fetch_jwks()
        claims_options = {
            "iss": {"essential": True, "value": self.discovery.issuer},
            "aud": {"essential": True, "value": self.client_id},
            "exp": {"essential": True},
        }

        try:
            key_set = JsonWebKey.import_key_set(jwks)
            claims = cast("Any", self.jwt).decode(raw, key_set, claims_options=claims_options)
            claims.validate(leeway=self.leeway)
        except DecodeError as e:
            logger.warning("ID token could not be decoded")
            raise MalformedTokenError(f"oidc: malformed id_token: {e}") from e
        except ExpiredTokenError as e:
            logger.warning("ID token verification failed: expired")
            raise TokenVerificationError(f"oidc: id_token expired: {e}") from e
        except (InvalidClaimError, MissingClaimError) as e:
            logger.warning(f"ID token verification failed: {e}")
            raise TokenVerificationError(f"oidc: invalid id_token claims: {e}") from e
        except BadSignatureError as e:
            logger.error("ID token verification failed: bad signature")
            raise TokenVerificationError(f"oidc: invalid id_token signature: {e}") from e
        except JoseError as e:
            logger.error(f"ID token verification failed: {e}")
            raise TokenVerificationError(f"oidc: id_token verification failed: {e}") from e
        except ValueError as e:
            # authlib raises ValueError for unknown kid / unusable key sets
            logger.error(f"ID token verification failed: {e}")
            raise TokenVerificationError(f"oidc: id_token key not found: {e}") from e

        return dict(claims)
