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
Auto-registration of local accounts for first-seen external identities.
"""

from coreason_sso.config import SSOConfig
from coreason_sso.exceptions import IdentityResolutionError, UsernameConflictError, UserNotFoundError
from coreason_sso.interfaces import UserStore
from coreason_sso.models import FederatedIdentity, LocalUser, UserRole
from coreason_sso.state_cache import random_string
from coreason_sso.utils.logger import anonymize, logger

PLACEHOLDER_PASSWORD_LENGTH = 16


class AutoRegistrar:
    """
    Creates a local user when an SSO lookup found none and policy allows it.
    """

    def __init__(self, config: SSOConfig, user_store: UserStore) -> None:
        self.config = config
        self.user_store = user_store

    def build_user(self, identity: FederatedIdentity) -> LocalUser:
        # The password is never disclosed; SSO stays the only way in
        return LocalUser(
            username=identity.external_username,
            password=random_string(PLACEHOLDER_PASSWORD_LENGTH),
            permission=self.config.default_permission,
            base_path=self.config.default_dir,
            role=UserRole.GENERAL,
            disabled=False,
            sso_id=identity.external_id,
        )

    async def register(self, identity: FederatedIdentity, lookup_error: Exception) -> LocalUser:
        """
        Registers the identity, or re-raises the lookup error.

        Args:
            identity: The resolved external identity.
            lookup_error: The error returned by the user lookup.

        Returns:
            LocalUser: The created user.

        Raises:
            Exception: `lookup_error` itself unless it is a `UserNotFoundError`
                and auto-registration is enabled.
            IdentityResolutionError: If the provider supplied no username.
            PersistenceError: If creation fails, including a second username conflict.
        """
        if not isinstance(lookup_error, UserNotFoundError) or not self.config.auto_register:
            raise lookup_error
        if not identity.external_username:
            raise IdentityResolutionError("Unable to get username from SSO provider")

        user = self.build_user(identity)
        try:
            await self.user_store.create_user(user)
        except UsernameConflictError:
            user = user.model_copy(update={"username": f"{user.username}_{identity.external_id}"})
            logger.info("SSO username taken, retrying registration with id suffix")
            await self.user_store.create_user(user)

        logger.info(
            f"Auto-registered SSO user {anonymize(identity.external_id, self.config.pii_salt)} "
            f"from {identity.platform}"
        )
        return user
