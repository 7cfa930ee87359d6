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
Static descriptors of the native OAuth2 platforms.
"""

from coreason_sso.exceptions import ConfigurationError, InvalidPlatformError
from coreason_sso.models import BodyEncoding, Platform, ProviderProfile

AUTHORIZATION_CODE = "authorization_code"

PROFILES: dict[Platform, ProviderProfile] = {
    Platform.GITHUB: ProviderProfile(
        name=Platform.GITHUB,
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        user_info_url="https://api.github.com/user",
        scope="read:user",
        user_id_field="id",
        username_field="login",
    ),
    Platform.MICROSOFT: ProviderProfile(
        name=Platform.MICROSOFT,
        authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        user_info_url="https://graph.microsoft.com/v1.0/me",
        scope="user.read",
        user_id_field="id",
        username_field="displayName",
        grant_type=AUTHORIZATION_CODE,
        extra_authorize_params=(("response_mode", "query"),),
    ),
    Platform.GOOGLE: ProviderProfile(
        name=Platform.GOOGLE,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        user_info_url="https://www.googleapis.com/oauth2/v1/userinfo",
        scope="https://www.googleapis.com/auth/userinfo.profile",
        user_id_field="id",
        username_field="name",
        grant_type=AUTHORIZATION_CODE,
    ),
    Platform.DINGTALK: ProviderProfile(
        name=Platform.DINGTALK,
        authorize_url="https://login.dingtalk.com/oauth2/auth",
        token_url="https://api.dingtalk.com/v1.0/oauth2/userAccessToken",
        user_info_url="https://api.dingtalk.com/v1.0/contact/users/me",
        scope="openid",
        auth_code_field="authCode",
        user_id_field="unionId",
        username_field="nick",
        body_encoding=BodyEncoding.JSON,
        grant_type=AUTHORIZATION_CODE,
        extra_authorize_params=(("prompt", "consent"),),
    ),
    Platform.CASDOOR: ProviderProfile(
        name=Platform.CASDOOR,
        authorize_url="{endpoint}/login/oauth/authorize",
        token_url="{endpoint}/api/login/oauth/access_token",
        user_info_url="{endpoint}/api/userinfo",
        scope="profile",
        user_id_field="sub",
        username_field="preferred_username",
        grant_type=AUTHORIZATION_CODE,
    ),
}

NATIVE_PLATFORMS: frozenset[Platform] = frozenset(PROFILES)


def get_profile(platform: Platform | None, endpoint: str = "") -> ProviderProfile:
    """
    Returns the profile for a native platform with `{endpoint}` resolved.

    Args:
        platform: The configured platform.
        endpoint: The endpoint base (trailing slash stripped) for self-hosted platforms.

    Returns:
        ProviderProfile: The resolved profile.

    Raises:
        InvalidPlatformError: If the platform is not a native one.
        ConfigurationError: If a self-hosted platform has no endpoint configured.
    """
    if platform is None or platform not in PROFILES:
        raise InvalidPlatformError("Invalid SSO platform")
    profile = PROFILES[platform]
    if "{endpoint}" not in profile.authorize_url:
        return profile
    if not endpoint:
        raise ConfigurationError(f"{platform} requires an endpoint to be configured")
    return profile.model_copy(
        update={
            "authorize_url": profile.authorize_url.format(endpoint=endpoint),
            "token_url": profile.token_url.format(endpoint=endpoint),
            "user_info_url": profile.user_info_url.format(endpoint=endpoint),
        }
    )
