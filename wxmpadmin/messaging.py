"""Customer-service messages and QR-code creation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .api_base import WxApi

logger = logging.getLogger(__name__)

MAX_TEMP_QR_EXPIRE_SECONDS = 2592000


class CustomServiceApi(WxApi):
    """Messages sent to a follower through the customer-service interface."""

    def send_custom_message(self, openid: str, body: Mapping[str, Any]) -> None:
        """Send a message body (msgtype plus its payload) to a follower."""
        payload = {**body, "touser": openid}
        self.request("POST", "/cgi-bin/message/custom/send", json=payload)

    def send_custom_typing(self, openid: str) -> None:
        """Show the "typing" state to a follower."""
        payload = {"touser": openid, "command": "Typing"}
        self.request("POST", "/cgi-bin/message/custom/typing", json=payload)


@dataclass
class CreateQrCodeResp:
    """The ticket and address of a created QR code."""

    ticket: str = ""
    expire_seconds: int = 0
    url: str = ""


def _scene(scene_str: str, scene_id: int) -> tuple[str, dict[str, Any]]:
    if scene_str:
        return "STR_SCENE", {"scene": {"scene_str": scene_str}}
    return "SCENE", {"scene": {"scene_id": scene_id}}


class QrCodeApi(WxApi):
    """Creation of permanent and temporary QR codes."""

    def _create(self, body: dict[str, Any]) -> CreateQrCodeResp:
        response = self.request("POST", "/cgi-bin/qrcode/create", json=body)
        payload = self._json(response)
        return CreateQrCodeResp(
            ticket=str(payload.get("ticket") or ""),
            expire_seconds=int(payload.get("expire_seconds") or 0),
            url=str(payload.get("url") or ""),
        )

    def create_qr_code(self, scene_str: str, scene_id: int = 0) -> CreateQrCodeResp:
        """Create a permanent QR code; a string scene wins over a numeric one."""
        kind, action_info = _scene(scene_str, scene_id)
        return self._create({"action_name": f"QR_LIMIT_{kind}", "action_info": action_info})

    def create_temp_qr_code(
        self, scene_str: str, scene_id: int = 0, expire_seconds: int = MAX_TEMP_QR_EXPIRE_SECONDS
    ) -> CreateQrCodeResp:
        """Create a temporary QR code, its lifetime capped at thirty days."""
        expire_seconds = min(expire_seconds, MAX_TEMP_QR_EXPIRE_SECONDS)
        kind, action_info = _scene(scene_str, scene_id)
        return self._create(
            {
                "expire_seconds": expire_seconds,
                "action_name": f"QR_{kind}",
                "action_info": action_info,
            }
        )