"""The authenticated HTTP client for the official-account API."""

from __future__ import annotations

import json as _json
import logging
import os
import re
from typing import Any, Mapping

import requests

from .crypto import MpOptions, WechatError
from .token_store import AccessTokenStore

logger = logging.getLogger(__name__)

_INVALID_TOKEN_CODES = (40001, 40014)
_UNAUTHORIZED_CODE = 48001
_FILENAME_RE = re.compile(r'filename="(.+)"')


class WxApiError(Exception):
    """A response that could not be used: bad status or an unreadable body."""


def content_disposition_extension(content_disposition: str) -> str:
    """Return the file extension, with its dot, named by a Content-Disposition value."""
    match = _FILENAME_RE.search(content_disposition)
    if not match:
        return ""
    parts = match.group(1).split(".")
    if len(parts) > 1:
        return "." + parts[-1]
    return ""


class WxApi:
    """Sends requests with the current access token and checks the replies."""

    BASE_URL = "https://api.weixin.qq.com"

    def __init__(
        self,
        options: MpOptions,
        store: AccessTokenStore,
        session: requests.Session | None = None,
    ) -> None:
        self._options = options
        self._store = store
        self._session = session or requests.Session()
        proxy = os.environ.get("WA_PROXY", "")
        if proxy:
            logger.info("WA_PROXY: %s", proxy)
            self._session.proxies.update({"http": proxy, "https": proxy})

    @property
    def options(self) -> MpOptions:
        return self._options

    @property
    def app_id(self) -> str:
        return self._options.app_id

    @property
    def store(self) -> AccessTokenStore:
        return self._store

    def prepare_response(
        self, response: requests.Response | None, check_errcode: bool = True
    ) -> requests.Response:
        """Raise unless the response is a success; return it otherwise."""
        if response is None:
            raise WxApiError("response is missing")
        if response.status_code != 200:
            raise WxApiError("http status code not 200")

        logger.debug(
            "response content type: %s, %d bytes",
            response.headers.get("Content-Type", ""),
            len(response.content),
        )
        # Files are returned as they are, without an errcode to check.
        if response.headers.get("Content-Disposition"):
            return response

        if check_errcode:
            payload = self._json(response)
            errcode = int(payload.get("errcode") or 0)
            if errcode != 0:
                errmsg = str(payload.get("errmsg") or "")
                logger.warning("errcode: %s %s", errcode, errmsg)
                if errcode in _INVALID_TOKEN_CODES:
                    errmsg = f"access_token 无效-{errmsg}"
                    self._store.refresh(True)
                if errcode == _UNAUTHORIZED_CODE:
                    errmsg = f"api 功能未授权，请确认公众号已获得该接口权限-{errmsg}"
                raise WechatError(errcode, errmsg)
        return response

    def request(
        self,
        method: str,
        path: str,
        check_errcode: bool = True,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        files: Any = None,
        data: Any = None,
    ) -> requests.Response:
        """Send a request to ``path`` with the access token and return the checked response."""
        query = dict(params or {})
        query["access_token"] = self._store.get()
        headers = None
        body = data
        if json is not None:
            # Non-ASCII text is sent as is rather than as \u escapes.
            body = _json.dumps(json, ensure_ascii=False).encode("utf-8")
            headers = {"Content-Type": "application/json"}
        response = self._session.request(
            method,
            self.BASE_URL + path,
            params=query,
            data=body,
            files=files,
            headers=headers,
        )
        return self.prepare_response(response, check_errcode)

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise WxApiError(f"invalid response body: {exc}") from exc
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise WxApiError("response body is not a JSON object")
        return payload