"""Access-token caching in Redis, shared between processes through a lock key."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable

from .crypto import MpOptions, get_access_token

logger = logging.getLogger(__name__)

REFRESH_THRESHOLD_SECONDS = 300
LOCK_SECONDS = 10
WAIT_ATTEMPTS = 10
WAIT_INTERVAL_SECONDS = 0.5

Fetcher = Callable[[str, str], "tuple[str, int]"]


def _text(value: Any) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class AccessTokenStore(ABC):
    """Somewhere an access token is kept and renewed."""

    @abstractmethod
    def store(self, access_token: str, expire: int | timedelta) -> None:
        """Keep a token for the given lifetime."""

    @abstractmethod
    def get(self) -> str:
        """Return a usable token, fetching one if none is kept."""

    @abstractmethod
    def refresh(self, wait: bool = False) -> str:
        """Fetch a new token; return an empty string if another holder is renewing it."""


class RedisStore(AccessTokenStore):
    """Keeps the token of one account under ``<appid>_access_token``."""

    def __init__(
        self,
        options: MpOptions,
        rdb: Any,
        fetcher: Fetcher | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._options = options
        self._rdb = rdb
        self._fetcher = fetcher or get_access_token
        self._sleep = sleep or time.sleep

    @property
    def token_key(self) -> str:
        return f"{self._options.app_id}_access_token"

    @property
    def lock_key(self) -> str:
        return f"{self._options.app_id}_access_token_lock"

    def store(self, access_token: str, expire: int | timedelta) -> None:
        # A zero lifetime keeps the token without expiry.
        self._rdb.set(self.token_key, access_token, ex=expire if expire else None)

    def get(self) -> str:
        token = _text(self._rdb.get(self.token_key))
        if not token:
            logger.info("access token not exists")
            return self.refresh(True)

        ttl = self._rdb.ttl(self.token_key)
        if ttl < REFRESH_THRESHOLD_SECONDS:
            try:
                self.refresh(False)
            except Exception as exc:  # the cached token is still usable
                logger.warning("background access token refresh failed: %s", exc)
        return token

    def refresh(self, wait: bool = False) -> str:
        acquired = self._rdb.set(self.lock_key, "1", nx=True, ex=LOCK_SECONDS)
        if acquired:
            logger.info("get access token lock ok")
            try:
                token, expires_in = self._fetcher(self._options.app_id, self._options.app_secret)
                self.store(token, expires_in)
                return token
            finally:
                self._rdb.delete(self.lock_key)

        logger.info("get access token lock not ok")
        if not wait:
            return ""
        for _ in range(WAIT_ATTEMPTS):
            self._sleep(WAIT_INTERVAL_SECONDS)
            token = self._rdb.get(self.token_key)
            if token is not None:
                return _text(token)
        raise TimeoutError("wait access token timeout")