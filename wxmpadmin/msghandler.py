"""Handling of pushed messages: signature checks, decryption, parsing and replies."""

from __future__ import annotations

import json
import logging
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .crypto import MpOptions, aes_decrypt_wechat, aes_encrypt, generate_signature
from .messages import (
    Message,
    ReplyArticle,
    ReplyImage,
    ReplyMessage,
    ReplyMusic,
    ReplyNews,
    ReplyText,
    ReplyVideo,
    ReplyVoice,
    SendArticle,
    message_class_for,
)

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """The parts of an incoming HTTP request the handler needs."""

    method: str = "GET"
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str:
        """Return a header value, matched without regard to case."""
        lowered = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == lowered), "")

    def arg(self, name: str) -> str:
        """Return a query parameter, or an empty string."""
        return str(self.query.get(name, "") or "")

    @property
    def is_xml(self) -> bool:
        return "text/xml" in self.header("Content-Type")


@dataclass
class HttpResponse:
    """A response to hand back to the HTTP server."""

    status: int = 200
    content_type: str = "text/plain; charset=utf-8"
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    @classmethod
    def plain(cls, text: str) -> "HttpResponse":
        return cls(200, "text/plain; charset=utf-8", text.encode("utf-8"))

    @classmethod
    def json_body(cls, payload: Any) -> "HttpResponse":
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        return cls(200, "application/json; charset=utf-8", body.encode("utf-8"))


def _parse_body(body: bytes, is_xml: bool) -> dict[str, Any]:
    if is_xml:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            raise ValueError(f"invalid xml body: {exc}") from exc
        if root.tag != "xml":
            raise ValueError(f"expected element type <xml> but have <{root.tag}>")
        return {child.tag: child.text or "" for child in root}
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ValueError(f"invalid json body: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("json body is not an object")
    return payload


class ReplyCtrl:
    """Lets a message handler answer the push or send customer-service messages."""

    def __init__(self, request: HttpRequest, msg_handler: "MsgHandler", msg: Optional[Message]) -> None:
        self.request = request
        self.msg_handler = msg_handler
        self.msg = msg
        self.response: Optional[HttpResponse] = None

    @property
    def api_client(self) -> Any:
        return self.msg_handler.api_client

    def encrypt_reply(self, raw: bytes | str) -> bytes:
        """Wrap raw reply bytes in an encrypted, signed envelope."""
        options = self.msg_handler.options
        encrypted = aes_encrypt(raw, options.aes_key)
        timestamp = str(int(time.time()))
        nonce = self.request.arg("nonce")
        signature = generate_signature(options.token, timestamp, nonce, encrypted)
        if self.request.is_xml:
            envelope = (
                "<xml>"
                f"<Encrypt><![CDATA[{encrypted}]]></Encrypt>"
                f"<MsgSignature><![CDATA[{signature}]]></MsgSignature>"
                f"<TimeStamp>{timestamp}</TimeStamp>"
                f"<Nonce><![CDATA[{nonce}]]></Nonce>"
                "</xml>"
            )
        else:
            envelope = json.dumps(
                {
                    "Encrypt": encrypted,
                    "MsgSignature": signature,
                    "TimeStamp": int(timestamp),
                    "Nonce": nonce,
                },
                ensure_ascii=False,
                separators=(",", ":"),
            )
        return envelope.encode("utf-8")

    def _reply(self, reply: ReplyMessage) -> None:
        reply.to_user_name = self.msg.from_user_name
        reply.from_user_name = self.msg.to_user_name
        if self.request.is_xml:
            self.response = HttpResponse(200, "application/xml", reply.to_xml().encode("utf-8"))
        else:
            body = json.dumps(reply.to_dict(), ensure_ascii=False, separators=(",", ":"))
            self.response = HttpResponse(200, "application/json", body.encode("utf-8"))

    def reply_text(self, content: str) -> None:
        self._reply(ReplyText(content=content))

    def reply_image(self, media_id: str) -> None:
        self._reply(ReplyImage(media_id=media_id))

    def reply_voice(self, media_id: str) -> None:
        self._reply(ReplyVoice(media_id=media_id))

    def reply_video(self, media_id: str, title: str, description: str) -> None:
        self._reply(ReplyVideo(media_id=media_id, title=title, description=description))

    def reply_music(
        self, title: str, description: str, music_url: str, hq_music_url: str, thumb_media_id: str
    ) -> None:
        self._reply(
            ReplyMusic(
                title=title,
                description=description,
                music_url=music_url,
                hq_music_url=hq_music_url,
                thumb_media_id=thumb_media_id,
            )
        )

    def reply_news(self, articles: list[ReplyArticle]) -> None:
        self._reply(ReplyNews(articles=list(articles)))

    def _send(self, data: dict[str, Any]) -> None:
        client = self.api_client
        if client is None:
            logger.info("no api client, custom message not sent")
            return
        try:
            client.send_custom_message(self.msg.from_user_name, data)
        except Exception as exc:
            logger.warning("send custom message failed: %s", exc)
            raise

    def send_text(self, content: str) -> None:
        self._send({"msgtype": "text", "text": {"content": content}})

    def send_image(self, media_id: str) -> None:
        self._send({"msgtype": "image", "image": {"media_id": media_id}})

    def send_voice(self, media_id: str) -> None:
        self._send({"msgtype": "voice", "voice": {"media_id": media_id}})

    def send_video(self, media_id: str, thumb_media_id: str, title: str, description: str) -> None:
        self._send(
            {
                "msgtype": "video",
                "video": {
                    "media_id": media_id,
                    "thumb_media_id": thumb_media_id,
                    "title": title,
                    "description": description,
                },
            }
        )

    def send_music(
        self, title: str, description: str, music_url: str, hq_music_url: str, thumb_media_id: str
    ) -> None:
        self._send(
            {
                "msgtype": "music",
                "music": {
                    "title": title,
                    "description": description,
                    "musicurl": music_url,
                    "hqmusicurl": hq_music_url,
                    "thumb_media_id": thumb_media_id,
                },
            }
        )

    def send_news(self, articles: list[SendArticle]) -> None:
        self._send(
            {"msgtype": "news", "news": {"articles": [article.to_dict() for article in articles]}}
        )

    def send_mp_news(self, media_id: str) -> None:
        self._send({"msgtype": "mpnews", "mpnews": {"media_id": media_id}})

    def send_mp_news_article(self, article_id: str) -> None:
        self._send({"msgtype": "mpnewsarticle", "mpnewsarticle": {"article_id": article_id}})

    def send_wx_card(self, card_id: str) -> None:
        self._send({"msgtype": "wxcard", "wxcard": {"card_id": card_id}})

    def send_mini_program_page(
        self, title: str, app_id: str, page_path: str, thumb_media_id: str
    ) -> None:
        self._send(
            {
                "msgtype": "miniprogrampage",
                "miniprogrampage": {
                    "title": title,
                    "appid": app_id,
                    "pagepath": page_path,
                    "thumb_media_id": thumb_media_id,
                },
            }
        )


MsgHandlerFunc = Callable[[ReplyCtrl, Optional[Message]], None]


def _default_handler(rc: ReplyCtrl, msg: Optional[Message]) -> None:
    rc.response = HttpResponse.plain("success")


class MsgHandler:
    """Serves the push endpoint of one account."""

    def __init__(self, options: MpOptions, api_client: Any = None) -> None:
        self.options = options
        self.api_client = api_client
        self._handler: MsgHandlerFunc = _default_handler

    def set_handler(self, handler: MsgHandlerFunc) -> None:
        self._handler = handler

    def validate_signature(self, request: HttpRequest) -> bool:
        """Check the signature of token, timestamp and nonce."""
        expected = generate_signature(
            self.options.token, request.arg("timestamp"), request.arg("nonce")
        )
        return expected == request.arg("signature")

    def _body(self, request: HttpRequest) -> bytes:
        body = request.body
        if request.arg("encrypt_type") != "aes":
            return body
        envelope = _parse_body(body, request.is_xml)
        encrypt = str(envelope.get("Encrypt") or "")
        expected = generate_signature(
            self.options.token, request.arg("timestamp"), request.arg("nonce"), encrypt
        )
        if expected != request.arg("msg_signature"):
            raise ValueError("msg_signature error")
        return aes_decrypt_wechat(self.options.aes_key, encrypt)

    def parse_message(self, request: HttpRequest) -> Optional[Message]:
        """Return the pushed message, or None for non-POST requests and unknown types."""
        if request.method.upper() != "POST":
            return None
        mapping = _parse_body(self._body(request), request.is_xml)
        cls = message_class_for(str(mapping.get("MsgType") or ""))
        if cls is None:
            return None
        return cls.from_mapping(mapping)

    def serve(self, request: HttpRequest) -> HttpResponse:
        """Handle one request to the push endpoint and return the response."""
        if not self.validate_signature(request):
            return HttpResponse.json_body({"code": 1, "message": "signature error"})
        if request.method.upper() != "POST":
            return HttpResponse.plain(request.arg("echostr"))
        try:
            msg = self.parse_message(request)
        except ValueError as exc:
            logger.warning("parse message failed: %s", exc)
            return HttpResponse.json_body({"code": 1, "message": str(exc)})
        rc = ReplyCtrl(request, self, msg)
        self._handler(rc, msg)
        return rc.response or HttpResponse()