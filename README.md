# wxmpadmin

Building blocks for the back end of a WeChat official account.

## What it provides

- **Push messages** (`wxmpadmin.msghandler`): `MsgHandler` serves the push
  endpoint. `serve(request)` takes an `HttpRequest` and returns an
  `HttpResponse`. It checks the `signature` query parameter and echoes
  `echostr` on GET. On POST it decrypts bodies sent with
  `encrypt_type=aes` after checking `msg_signature`. It then parses XML or
  JSON into a typed message and calls the handler you registered with
  `set_handler`. The handler receives a `ReplyCtrl`. Its `reply_text`,
  `reply_image`, `reply_voice`, `reply_video`, `reply_music` and
  `reply_news` methods answer the push directly. Its `send_text`,
  `send_image`, `send_voice`, `send_video`, `send_music`, `send_news`,
  `send_mp_news`, `send_mp_news_article`, `send_wx_card` and
  `send_mini_program_page` methods send customer-service messages through
  the API client, when there is one. With no handler set, the endpoint
  answers `success`.
- **Message types** (`wxmpadmin.messages`): these are the pushed messages
  `MessageText`, `MessageImage`, `MessageVoice`, `MessageVideo`,
  `MessageShortVideo`, `MessageLocation`, `MessageLink` and `MessageEvent`.
  Each is built with `from_mapping`, and `message_class_for(msg_type)`
  looks the class up. The reply classes are `ReplyText`, `ReplyImage`,
  `ReplyVoice`, `ReplyVideo`, `ReplyMusic` and `ReplyNews`, each with
  `to_dict()` and `to_xml()`.
- **Platform API** (`wxmpadmin.client`): `create_client(options, rdb)` builds
  a `WechatApi`. It combines `MenuApi` (get, create, delete and try-match
  menus, including conditional ones), `QrCodeApi` (`create_qr_code`,
  `create_temp_qr_code`, with lifetimes capped at 30 days) and
  `CustomServiceApi` (`send_custom_message`, `send_custom_typing`).
  Platform errors raise `WechatError`. Unusable responses raise
  `WxApiError`. An invalid access token triggers a token refresh before the
  error is raised. `get_public_ip()` returns this host's public address, or
  an empty string on failure.
- **Access tokens** (`wxmpadmin.token_store`): `RedisStore` caches a token
  under `<appid>_access_token`. It renews the token when it has less than
  five minutes left, using a lock key shared between processes. `rdb` is
  any Redis-style connection with `get`, `set`, `ttl` and `delete`, such as
  `redis.Redis`, which you install yourself.
- **Crypto** (`wxmpadmin.crypto`): `aes_encrypt`, `aes_decrypt_wechat`,
  `generate_signature`, and `get_access_token(appid, appsecret)`.
- **MongoDB storage** (`wxmpadmin.store`):
  - `connect()` opens a shared connection and `init_mongodb()` sets it up.
    Both read `MongoConfig.from_env()` (`MONGO_USER`, `MONGO_PASSWORD`,
    `MONGO_HOST`, `MONGO_DB`).
  - `ModelBase(collection_name, entity_cls)` maps a collection to an
    `Entity` dataclass. It stamps `created_at` and `updated_at`, and its
    queries skip documents that have a `deleted_at`. Deleting with an empty
    filter is refused.
  - `check_collection_index_exists` and
    `check_collection_compound_index_exists` inspect the result of
    `get_collection_indexes`.

An outgoing proxy for API calls can be set with `WA_PROXY`.

## Example

```python
from wxmpadmin.crypto import MpOptions
from wxmpadmin.msghandler import HttpRequest, MsgHandler

options = MpOptions(app_id="wx-example-appid", app_secret="secret",
                    token="token", aes_key="placeholder")
handler = MsgHandler(options, None)

def on_message(ctrl, msg):
    if msg is not None:
        ctrl.reply_text("hello")

handler.set_handler(on_message)
# response = handler.serve(HttpRequest(method="POST", query=..., headers=..., body=...))
```

## What it does not do

- It has no web server and no command. Route requests from your own
  framework into `MsgHandler.serve`.
- It defines no concrete entity classes or collections. You subclass
  `Entity` yourself.
- It has no auto-reply rules, keyword matching, material listings or
  per-account settings service.

## Installation and tests

```
pip install -e .[test]
pytest
```