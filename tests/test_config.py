# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

import os
from unittest.mock import patch

import pytest
from conftest import FakeSettings
from pydantic import ValidationError

from coreason_sso.config import SSOConfig
from coreason_sso.models import Platform


def test_defaults() -> None:
    config = SSOConfig()
    assert config.login_enabled is False
    assert config.compatibility_mode is False
    assert config.login_platform is None
    assert config.oidc_username_key == "name"
    assert config.http_retries == 3
    assert config.state_ttl == 300.0
    assert config.native_state_check is False


def test_from_settings_coerces_values() -> None:
    settings = FakeSettings(
        {
            "SSOLoginEnabled": "true",
            "SSOCompatibilityMode": "0",
            "SSOLoginPlatform": "Casdoor",
            "SSOClientId": "cid",
            "SSOClientSecret": "secret",
            "SSOEndpointName": "https://casdoor.example.com/",
            "SSOExtraScopes": "email groups",
            "SSOAutoRegister": "yes",
            "SSODefaultPermission": "12",
            "SSODefaultDir": "/home",
            "SSOOIDCUsernameKey": "preferred_username",
        }
    )
    config = SSOConfig.from_settings(settings, http_timeout=5.0)

    assert config.login_enabled is True
    assert config.compatibility_mode is False
    assert config.login_platform is Platform.CASDOOR
    assert config.client_id == "cid"
    assert config.client_secret.get_secret_value() == "secret"
    assert config.endpoint_base == "https://casdoor.example.com"
    assert config.auto_register is True
    assert config.default_permission == 12
    assert config.default_dir == "/home"
    assert config.oidc_username_key == "preferred_username"
    assert config.http_timeout == 5.0


def test_from_settings_missing_keys_keep_defaults() -> None:
    config = SSOConfig.from_settings(FakeSettings({}))
    assert config.login_enabled is False
    assert config.default_dir == "/"


def test_unknown_platform_is_none() -> None:
    config = SSOConfig.from_settings(FakeSettings({"SSOLoginPlatform": "Gitlab"}))
    assert config.login_platform is None


def test_invalid_permission_falls_back_to_zero() -> None:
    config = SSOConfig.from_settings(FakeSettings({"SSODefaultPermission": "abc"}))
    assert config.default_permission == 0


def test_blank_username_key_defaults_to_name() -> None:
    assert SSOConfig(oidc_username_key="  ").oidc_username_key == "name"


def test_scopes_baseline_and_extras() -> None:
    assert SSOConfig().scopes == ["openid", "profile"]
    config = SSOConfig(extra_scopes="email  profile groups")
    assert config.scopes == ["openid", "profile", "email", "groups"]


def test_config_is_frozen() -> None:
    config = SSOConfig()
    with pytest.raises(ValidationError):
        config.login_enabled = True  # type: ignore[misc]


def test_flow_timeout_must_be_bounded() -> None:
    with pytest.raises(ValidationError):
        SSOConfig(flow_timeout=0)
    with pytest.raises(ValidationError):
        SSOConfig(flow_timeout=600)


def test_env_prefix() -> None:
    with patch.dict(os.environ, {"COREASON_SSO_LOGIN_ENABLED": "true", "COREASON_SSO_LOGIN_PLATFORM": "OIDC"}):
        config = SSOConfig()
    assert config.login_enabled is True
    assert config.login_platform is Platform.OIDC
