import pytest
import requests
import responses
from responses import matchers

from wxmpadmin.crypto import MpOptions, WechatError
from wxmpadmin.messaging import CreateQrCodeResp, CustomServiceApi, QrCodeApi
from wxmpadmin.token_store import AccessTokenStore

BASE = "https://api.weixin.qq.com"


class StubStore(AccessTokenStore):
    def store(self, access_token, expire):
        pass

    def get(self):
        return "token"

    def refresh(self, wait=False):
        return "token"


@pytest.fixture
def custom(monkeypatch):
    monkeypatch.delenv("WA_PROXY", raising=False)
    return CustomServiceApi(MpOptions(app_id="wx-app"), StubStore(), requests.Session())


@pytest.fixture
def qr(monkeypatch):
    monkeypatch.delenv("WA_PROXY", raising=False)
    return QrCodeApi(MpOptions(app_id="wx-app"), StubStore(), requests.Session())


def test_send_custom_message_adds_recipient(custom):
    body = {"msgtype": "text", "text": {"content": "hello"}}
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/message/custom/send",
            json={"errcode": 0, "errmsg": "ok"},
            match=[
                matchers.json_params_matcher(
                    {"msgtype": "text", "text": {"content": "hello"}, "touser": "open-1"}
                )
            ],
        )
        result = custom.send_custom_message("open-1", body)
        assert len(rsps.calls) == 1
    assert result is None
    assert "touser" not in body


def test_send_custom_typing(custom):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/message/custom/typing",
            json={"errcode": 0},
            match=[matchers.json_params_matcher({"touser": "open-1", "command": "Typing"})],
        )
        result = custom.send_custom_typing("open-1")
        assert len(rsps.calls) == 1
    assert result is None


def test_send_custom_message_error(custom):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/message/custom/send",
            json={"errcode": 45015, "errmsg": "response out of time limit"},
        )
        with pytest.raises(WechatError) as info:
            custom.send_custom_message("open-1", {"msgtype": "text"})
    assert info.value.errcode == 45015


def test_create_qr_code_with_scene_str(qr):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/qrcode/create",
            json={"ticket": "tk", "url": "http://weixin.qq.com/q/abc"},
            match=[
                matchers.json_params_matcher(
                    {
                        "action_name": "QR_LIMIT_STR_SCENE",
                        "action_info": {"scene": {"scene_str": "promo"}},
                    }
                )
            ],
        )
        result = qr.create_qr_code("promo", 0)
    assert result == CreateQrCodeResp(
        ticket="tk", expire_seconds=0, url="http://weixin.qq.com/q/abc"
    )


def test_create_qr_code_with_scene_id(qr):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/qrcode/create",
            json={"ticket": "tk"},
            match=[
                matchers.json_params_matcher(
                    {"action_name": "QR_LIMIT_SCENE", "action_info": {"scene": {"scene_id": 7}}}
                )
            ],
        )
        result = qr.create_qr_code("", 7)
    assert result.ticket == "tk"


def test_create_temp_qr_code_caps_lifetime(qr):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/qrcode/create",
            json={"ticket": "tk", "expire_seconds": 2592000},
            match=[
                matchers.json_params_matcher(
                    {
                        "expire_seconds": 2592000,
                        "action_name": "QR_SCENE",
                        "action_info": {"scene": {"scene_id": 3}},
                    }
                )
            ],
        )
        result = qr.create_temp_qr_code("", 3, 2592000 * 2)
    assert result.expire_seconds == 2592000


def test_create_temp_qr_code_with_scene_str(qr):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            BASE + "/cgi-bin/qrcode/create",
            json={"ticket": "tk", "expire_seconds": 60},
            match=[
                matchers.json_params_matcher(
                    {
                        "expire_seconds": 60,
                        "action_name": "QR_STR_SCENE",
                        "action_info": {"scene": {"scene_str": "promo"}},
                    }
                )
            ],
        )
        result = qr.create_temp_qr_code("promo", 0, 60)
    assert result.expire_seconds == 60