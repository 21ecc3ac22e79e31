"""Incoming push messages and the passive reply messages sent back."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Mapping

_XML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "'": "&#39;",
    '"': "&#34;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _escape(text: str) -> str:
    return "".join(_XML_ESCAPES.get(ch, ch) for ch in text)


def _element(key: str, value: Any) -> str:
    inner = _render(value) if isinstance(value, dict) else _escape(str(value))
    return f"<{key}>{inner}</{key}>"


def _render(mapping: Mapping[str, Any]) -> str:
    parts = []
    for key, value in mapping.items():
        if isinstance(value, list):
            parts.extend(_element(key, item) for item in value)
        else:
            parts.append(_element(key, value))
    return "".join(parts)


def _wire(key: str, default: Any = "") -> Any:
    return field(default=default, metadata={"wire": key})


def _coerce_int(raw: Any, key: str) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"invalid integer for {key}: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            raise ValueError(f"invalid integer for {key}: {raw!r}") from None
    raise ValueError(f"invalid integer for {key}: {raw!r}")


@dataclass
class Message:
    """Fields common to every pushed message."""

    MSG_TYPE: ClassVar[str] = ""

    to_user_name: str = _wire("ToUserName")
    from_user_name: str = _wire("FromUserName")
    create_time: int = _wire("CreateTime", 0)
    msg_type: str = _wire("MsgType")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Message":
        """Build a message from a mapping keyed by the wire field names."""
        values: dict[str, Any] = {}
        for f in fields(cls):
            key = f.metadata["wire"]
            raw = data.get(key)
            if raw is None:
                continue
            if isinstance(f.default, int):
                values[f.name] = _coerce_int(raw, key)
            else:
                values[f.name] = str(raw)
        return cls(**values)


@dataclass
class MessageText(Message):
    MSG_TYPE: ClassVar[str] = "text"

    content: str = _wire("Content")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageImage(Message):
    MSG_TYPE: ClassVar[str] = "image"

    pic_url: str = _wire("PicUrl")
    media_id: str = _wire("MediaId")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageVoice(Message):
    MSG_TYPE: ClassVar[str] = "voice"

    media_id: str = _wire("MediaId")
    format: str = _wire("Format")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")
    media_id_16k: str = _wire("MediaId16K")


@dataclass
class MessageVideo(Message):
    MSG_TYPE: ClassVar[str] = "video"

    media_id: str = _wire("MediaId")
    thumb_media_id: str = _wire("ThumbMediaId")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageShortVideo(Message):
    MSG_TYPE: ClassVar[str] = "shortvideo"

    media_id: str = _wire("MediaId")
    thumb_media_id: str = _wire("ThumbMediaId")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageLocation(Message):
    MSG_TYPE: ClassVar[str] = "location"

    location_x: str = _wire("Location_X")
    location_y: str = _wire("Location_Y")
    scale: str = _wire("Scale")
    label: str = _wire("Label")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageLink(Message):
    MSG_TYPE: ClassVar[str] = "link"

    title: str = _wire("Title")
    description: str = _wire("Description")
    url: str = _wire("Url")
    msg_id: int = _wire("MsgId", 0)
    msg_data_id: str = _wire("MsgDataId")
    idx: str = _wire("Idx")


@dataclass
class MessageEvent(Message):
    MSG_TYPE: ClassVar[str] = "event"

    event: str = _wire("Event")
    event_key: str = _wire("EventKey")
    ticket: str = _wire("Ticket")


_MESSAGE_CLASSES: dict[str, type[Message]] = {
    cls.MSG_TYPE: cls
    for cls in (
        MessageText,
        MessageImage,
        MessageVoice,
        MessageVideo,
        MessageShortVideo,
        MessageLocation,
        MessageLink,
        MessageEvent,
    )
}


def message_class_for(msg_type: str) -> type[Message] | None:
    """Return the message class for a MsgType value, or None if unsupported."""
    return _MESSAGE_CLASSES.get(msg_type)


@dataclass
class ReplyMessage:
    """A passive reply returned in the body of the push response."""

    MSG_TYPE: ClassVar[str] = ""

    to_user_name: str = ""
    from_user_name: str = ""
    create_time: int = field(default_factory=lambda: int(time.time()))

    @property
    def msg_type(self) -> str:
        return self.MSG_TYPE

    def _payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Return the reply keyed by its wire field names."""
        return {
            "ToUserName": self.to_user_name,
            "FromUserName": self.from_user_name,
            "CreateTime": self.create_time,
            "MsgType": self.MSG_TYPE,
            **self._payload(),
        }

    def to_xml(self) -> str:
        """Return the reply as an XML document rooted at <xml>."""
        return f"<xml>{_render(self.to_dict())}</xml>"


@dataclass
class ReplyText(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "text"

    content: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"Content": self.content}


@dataclass
class ReplyImage(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "image"

    media_id: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"Image": {"MediaId": self.media_id}}


@dataclass
class ReplyVoice(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "voice"

    media_id: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"Voice": {"MediaId": self.media_id}}


@dataclass
class ReplyVideo(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "video"

    media_id: str = ""
    title: str = ""
    description: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "Video": {
                "MediaId": self.media_id,
                "Title": self.title,
                "Description": self.description,
            }
        }


@dataclass
class ReplyMusic(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "music"

    title: str = ""
    description: str = ""
    thumb_media_id: str = ""
    music_url: str = ""
    hq_music_url: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "Music": {
                "Title": self.title,
                "Description": self.description,
                "ThumbMediaId": self.thumb_media_id,
                "MusicUrl": self.music_url,
                "HQMusicUrl": self.hq_music_url,
            }
        }


@dataclass
class ReplyArticle:
    """One article of a news reply."""

    title: str = ""
    description: str = ""
    pic_url: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "Title": self.title,
            "Description": self.description,
            "PicUrl": self.pic_url,
            "Url": self.url,
        }


@dataclass
class ReplyNews(ReplyMessage):
    MSG_TYPE: ClassVar[str] = "news"

    articles: list[ReplyArticle] = field(default_factory=list)

    def _payload(self) -> dict[str, Any]:
        return {
            "ArticleCount": len(self.articles),
            "Articles": {"item": [article.to_dict() for article in self.articles]},
        }


@dataclass
class SendArticle:
    """One article of a news message sent through the customer service API."""

    title: str = ""
    description: str = ""
    pic_url: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "picurl": self.pic_url,
            "url": self.url,
        }