"""Custom menus: reading, creating, deleting and match testing."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .api_base import WxApi

logger = logging.getLogger(__name__)

_OPTIONAL_BUTTON_FIELDS = ("value", "key", "url", "media_id", "article_id", "reply_data")
_OPTIONAL_MINIPROGRAM_FIELDS = ("appid", "pagepath")


def _normalize_button(button: Mapping[str, Any]) -> dict[str, Any]:
    """Keep the known button fields, dropping optional ones that are empty."""
    result: dict[str, Any] = {
        "type": button.get("type") or "",
        "name": button.get("name") or "",
    }
    for key in _OPTIONAL_BUTTON_FIELDS:
        if button.get(key):
            result[key] = button[key]
    sub_buttons = button.get("sub_button")
    if sub_buttons:
        result["sub_button"] = _normalize_buttons(sub_buttons)
    if button.get("news_info") is not None:
        result["news_info"] = button["news_info"]
    for key in _OPTIONAL_MINIPROGRAM_FIELDS:
        if button.get(key):
            result[key] = button[key]
    return result


def _normalize_buttons(buttons: Iterable[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    return [_normalize_button(button) for button in buttons or ()]


def _normalize_matchrule(rule: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if rule is None:
        return None
    result: dict[str, Any] = {}
    if rule.get("tag_id") is not None:
        result["tag_id"] = rule["tag_id"]
    if rule.get("client_platform_type"):
        result["client_platform_type"] = rule["client_platform_type"]
    return result


class MenuApi(WxApi):
    """The custom-menu interface of an account."""

    def get_menu(self) -> dict[str, Any]:
        """Return the menu currently shown, as configured on the platform."""
        payload = self._json(self.request("GET", "/cgi-bin/get_current_selfmenu_info"))
        selfmenu = payload.get("selfmenu_info") or {}
        return {
            "is_menu_open": int(payload.get("is_menu_open") or 0),
            "selfmenu_info": {"button": list(selfmenu.get("button") or [])},
        }

    def create_menu(self, buttons: Iterable[Mapping[str, Any]]) -> str:
        """Create the default menu; return the raw response text."""
        response = self.request(
            "POST", "/cgi-bin/menu/create", json={"button": _normalize_buttons(buttons)}
        )
        logger.info("create menu response: %s", response.text)
        return response.text

    def create_menu_conditional(
        self, buttons: Iterable[Mapping[str, Any]], matchrule: Mapping[str, Any] | None
    ) -> str:
        """Create a conditional menu; return its menu id as text."""
        body = {"button": _normalize_buttons(buttons), "matchrule": _normalize_matchrule(matchrule)}
        response = self.request("POST", "/cgi-bin/menu/addconditional", json=body)
        logger.info("create conditional menu response: %s", response.text)
        return str(int(self._json(response).get("menuid") or 0))

    def delete_menu(self) -> None:
        """Delete the default menu and every conditional menu."""
        response = self.request("GET", "/cgi-bin/menu/delete")
        logger.info("delete menu response: %s", response.text)

    def delete_menu_conditional(self, menu_id: str) -> None:
        """Delete one conditional menu."""
        response = self.request("POST", "/cgi-bin/menu/delconditional", json={"menuid": menu_id})
        logger.info("delete conditional menu response: %s", response.text)

    def try_match_menu(self, user_open_id: str) -> list[dict[str, Any]]:
        """Return the buttons the given user would see."""
        response = self.request("POST", "/cgi-bin/menu/trymatch", json={"user_id": user_open_id})
        logger.info("try match menu response: %s", response.text)
        return _normalize_buttons(self._json(response).get("button"))

    def get_all_menu(self) -> dict[str, Any]:
        """Return the default menu and every conditional menu."""
        payload = self._json(self.request("GET", "/cgi-bin/menu/get"))
        menu = payload.get("menu") or {}
        return {
            "menu": {
                "button": _normalize_buttons(menu.get("button")),
                "menuid": int(menu.get("menuid") or 0),
            },
            "conditionalmenu": [
                {
                    "button": _normalize_buttons(item.get("button")),
                    "matchrule": item.get("matchrule"),
                    "menuid": int(item.get("menuid") or 0),
                }
                for item in payload.get("conditionalmenu") or ()
            ],
        }