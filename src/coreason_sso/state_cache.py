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
State Cache component storing anti-CSRF state tokens.
"""

import secrets
import string
import threading
import time
import zlib
from collections.abc import Callable
from typing import Protocol

from coreason_sso.utils.logger import logger

STATE_LENGTH = 16
STATE_TTL = 300.0
DEFAULT_SHARDS = 16
_ALPHABET = string.ascii_letters + string.digits


def random_string(length: int) -> str:
    """Random alphanumeric string from the OS CSPRNG."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class StateStoreProtocol(Protocol):
    """
    Key/value store with per-entry TTL.
    Multi-instance deployments plug a shared store (e.g. Redis) in here.
    """

    def set(self, key: str, value: str, ttl: float) -> None: ...

    def get(self, key: str) -> str | None:
        """Returns the value, or None if missing or expired."""
        ...

    def pop_if(self, key: str, expected: str) -> bool:
        """
        Atomically removes the entry if it exists, is unexpired and equals `expected`.
        Returns True when removed.
        """
        ...


class MemoryStateStore:
    """
    In-process sharded TTL store. Each shard has its own lock so concurrent
    logins for different keys rarely contend. Expired entries are dropped when
    their shard is written or the entry is read.
    """

    def __init__(self, shards: int = DEFAULT_SHARDS, clock: Callable[[], float] = time.monotonic) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._clock = clock
        self._shards: list[dict[str, tuple[str, float]]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]

    def _index(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._shards)

    def set(self, key: str, value: str, ttl: float) -> None:
        idx = self._index(key)
        now = self._clock()
        with self._locks[idx]:
            shard = self._shards[idx]
            for stale in [k for k, (_, exp) in shard.items() if exp <= now]:
                del shard[stale]
            shard[key] = (value, now + ttl)

    def get(self, key: str) -> str | None:
        idx = self._index(key)
        with self._locks[idx]:
            entry = self._shards[idx].get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._shards[idx][key]
                return None
            return value

    def pop_if(self, key: str, expected: str) -> bool:
        idx = self._index(key)
        with self._locks[idx]:
            entry = self._shards[idx].get(key)
            if entry is None:
                return False
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._shards[idx][key]
                return False
            if value != expected:
                return False
            del self._shards[idx][key]
            return True

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards)


class StateCache:
    """
    Issues and checks state tokens bound to (client id, client IP).

    Attributes:
        store (StateStoreProtocol): The backing TTL store.
        ttl (float): Token lifetime in seconds.
        single_use (bool): Consume the token on successful verification.
    """

    def __init__(
        self,
        store: StateStoreProtocol | None = None,
        ttl: float = STATE_TTL,
        single_use: bool = True,
    ) -> None:
        self.store: StateStoreProtocol = store if store is not None else MemoryStateStore()
        self.ttl = ttl
        self.single_use = single_use

    @staticmethod
    def _key(client_id: str, state: str) -> str:
        return f"{client_id}_{state}"

    def generate_state(self, client_id: str, ip: str) -> str:
        """
        Creates a state token and remembers the IP it was issued to.

        Args:
            client_id: The OAuth2 client id.
            ip: The caller's IP.

        Returns:
            str: The token to embed in the authorize URL.
        """
        state = random_string(STATE_LENGTH)
        self.store.set(self._key(client_id, state), ip, self.ttl)
        return state

    def verify_state(self, client_id: str, ip: str, state: str) -> bool:
        """
        True iff an unexpired token exists for the key and was issued to `ip`.

        Args:
            client_id: The OAuth2 client id.
            ip: The IP of the callback request.
            state: The state query parameter.

        Returns:
            bool: Whether the state is valid.
        """
        if not state:
            return False
        key = self._key(client_id, state)
        if self.single_use:
            ok = self.store.pop_if(key, ip)
        else:
            ok = self.store.get(key) == ip
        if not ok:
            logger.warning("Rejected SSO state: unknown, expired or issued to another IP")
        return ok
