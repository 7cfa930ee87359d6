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
Federated single sign-on gateway for native OAuth2 platforms and generic OpenID Connect providers.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import SSOConfig
from .exceptions import CoreasonSSOError
from .gateway import SSOGateway
from .interfaces import SessionSigner, SettingsProvider, UserStore
from .models import CallbackMethod, FederatedIdentity, LocalUser, Platform, SSORequest, SSOResponse
from .state_cache import MemoryStateStore, StateCache

__all__ = [
    "CallbackMethod",
    "CoreasonSSOError",
    "FederatedIdentity",
    "LocalUser",
    "MemoryStateStore",
    "Platform",
    "SSOConfig",
    "SSOGateway",
    "SSORequest",
    "SSOResponse",
    "SessionSigner",
    "SettingsProvider",
    "StateCache",
    "UserStore",
]
