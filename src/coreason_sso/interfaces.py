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
Protocols for the host-owned collaborators.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from coreason_sso.models import LocalUser


class SettingsProvider(Protocol):
    """String-keyed runtime settings store."""

    def get(self, key: str) -> str | None:
        """Returns the raw setting value, or None when unset."""
        ...


class UserStore(Protocol):
    """Persistence for local user accounts."""

    async def get_user_by_sso_id(self, sso_id: str) -> "LocalUser":
        """
        Returns the user linked to the SSO id.

        Raises:
            UserNotFoundError: If no user is linked.
            PersistenceError: For any other storage failure.
        """
        ...

    async def create_user(self, user: "LocalUser") -> None:
        """
        Persists a new user.

        Raises:
            UsernameConflictError: If the username is already taken.
            PersistenceError: For any other storage failure.
        """
        ...


class SessionSigner(Protocol):
    """Mints local session tokens."""

    async def generate_token(self, user: "LocalUser") -> str: ...
