"""The complete API client of an account, and the server's public address."""

from __future__ import annotations

import logging
import os
from typing import Any

import requests

from .crypto import MpOptions
from .menus import MenuApi
from .messaging import CustomServiceApi, QrCodeApi
from .token_store import RedisStore

logger = logging.getLogger(__name__)

PUBLIC_IP_URL = "https://ifconfig.me/ip"
PUBLIC_IP_TIMEOUT_SECONDS = 4


class WechatApi(CustomServiceApi, QrCodeApi, MenuApi):
    """Every interface of one account behind a single client."""


def create_client(options: MpOptions, rdb: Any) -> WechatApi:
    """Build a client whose access token is cached in the given Redis connection."""
    return WechatApi(options, RedisStore(options, rdb))


def get_public_ip() -> str:
    """Return the public IP address of this host, or an empty string on failure."""
    proxy = os.environ.get("WA_PROXY", "")
    proxies = {"http": proxy, "https": proxy} if proxy else None
    try:
        response = requests.get(
            PUBLIC_IP_URL, timeout=PUBLIC_IP_TIMEOUT_SECONDS, proxies=proxies
        )
    except requests.RequestException as exc:
        logger.warning("get public ip failed: %s", exc)
        return ""
    return response.text