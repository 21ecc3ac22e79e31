import pytest
import requests
import responses
from responses import matchers

from wxmpadmin.client import PUBLIC_IP_URL, WechatApi, create_client, get_public_ip
from wxmpadmin.crypto import MpOptions


class FakeRedis:
    def __init__(self, values=None, ttl=7200):
        self.values = dict(values or {})
        self._ttl = ttl

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.values:
            return False
        self.values[key] = value
        return True

    def ttl(self, key):
        return self._ttl

    def delete(self, key):
        self.values.pop(key, None)


@pytest.fixture(autouse=True)
def _no_proxy(monkeypatch):
    monkeypatch.delenv("WA_PROXY", raising=False)


@pytest.fixture
def client():
    options = MpOptions(app_id="wx-app", app_secret="secret")
    rdb = FakeRedis({"wx-app_access_token": "token"})
    return create_client(options, rdb)


def test_create_client_uses_given_account(client):
    assert isinstance(client, WechatApi)
    assert client.app_id == "wx-app"


def test_client_sends_cached_token_to_menu_api(client):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            "https://api.weixin.qq.com/cgi-bin/menu/get",
            json={"menu": {"button": [{"type": "click", "name": "A", "key": "k"}], "menuid": 7}},
            match=[matchers.query_param_matcher({"access_token": "token"})],
        )
        result = client.get_all_menu()
    assert result["menu"]["menuid"] == 7
    assert result["menu"]["button"][0]["key"] == "k"


def test_client_sends_custom_message(client):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            "https://api.weixin.qq.com/cgi-bin/message/custom/send",
            json={"errcode": 0, "errmsg": "ok"},
            match=[
                matchers.json_params_matcher(
                    {"msgtype": "text", "text": {"content": "hi"}, "touser": "user-1"}
                )
            ],
        )
        result = client.send_custom_message(
            "user-1", {"msgtype": "text", "text": {"content": "hi"}}
        )
        assert len(rsps.calls) == 1
    assert result is None


def test_get_public_ip_returns_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, PUBLIC_IP_URL, body="203.0.113.7")
        assert get_public_ip() == "203.0.113.7"


def test_get_public_ip_returns_empty_on_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, PUBLIC_IP_URL, body=requests.ConnectionError("down"))
        assert get_public_ip() == ""