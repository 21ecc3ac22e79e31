import xml.etree.ElementTree as ET

import pytest

from wxmpadmin.messages import (
    Message,
    MessageEvent,
    MessageImage,
    MessageLink,
    MessageLocation,
    MessageShortVideo,
    MessageText,
    MessageVideo,
    MessageVoice,
    ReplyArticle,
    ReplyImage,
    ReplyMusic,
    ReplyNews,
    ReplyText,
    ReplyVideo,
    ReplyVoice,
    SendArticle,
    message_class_for,
)


@pytest.mark.parametrize(
    "msg_type, cls",
    [
        ("text", MessageText),
        ("image", MessageImage),
        ("voice", MessageVoice),
        ("video", MessageVideo),
        ("shortvideo", MessageShortVideo),
        ("location", MessageLocation),
        ("link", MessageLink),
        ("event", MessageEvent),
    ],
)
def test_message_class_for_known_types(msg_type, cls):
    assert message_class_for(msg_type) is cls
    assert cls.MSG_TYPE == msg_type


def test_message_class_for_unknown_type():
    assert message_class_for("miniprogram") is None


def test_text_from_mapping():
    msg = MessageText.from_mapping(
        {
            "ToUserName": "gh_owner",
            "FromUserName": "user-openid",
            "CreateTime": "1348831860",
            "MsgType": "text",
            "Content": "hello",
            "MsgId": "1234567890123456",
        }
    )
    assert msg.to_user_name == "gh_owner"
    assert msg.from_user_name == "user-openid"
    assert msg.create_time == 1348831860
    assert msg.content == "hello"
    assert msg.msg_id == 1234567890123456
    assert msg.msg_data_id == ""


def test_from_mapping_accepts_json_numbers():
    msg = MessageText.from_mapping({"CreateTime": 42, "MsgId": 7})
    assert (msg.create_time, msg.msg_id) == (42, 7)


def test_empty_integer_becomes_zero():
    msg = MessageImage.from_mapping({"CreateTime": "", "MsgId": "  "})
    assert msg.create_time == 0
    assert msg.msg_id == 0


def test_invalid_integer_raises():
    with pytest.raises(ValueError):
        MessageText.from_mapping({"CreateTime": "soon"})


def test_location_wire_names():
    msg = MessageLocation.from_mapping(
        {"Location_X": "23.1", "Location_Y": "113.3", "Scale": "20", "Label": "here"}
    )
    assert (msg.location_x, msg.location_y, msg.scale, msg.label) == (
        "23.1",
        "113.3",
        "20",
        "here",
    )


def test_event_from_mapping():
    msg = MessageEvent.from_mapping(
        {"MsgType": "event", "Event": "subscribe", "EventKey": "qrscene_42"}
    )
    assert msg.event == "subscribe"
    assert msg.event_key == "qrscene_42"
    assert msg.ticket == ""


def test_base_message_from_mapping():
    msg = Message.from_mapping({"MsgType": "text", "FromUserName": "u"})
    assert msg.msg_type == "text"
    assert msg.from_user_name == "u"


def test_reply_text_xml_exact():
    reply = ReplyText(to_user_name="u", from_user_name="f", create_time=1, content="hi")
    assert reply.to_xml() == (
        "<xml><ToUserName>u</ToUserName><FromUserName>f</FromUserName>"
        "<CreateTime>1</CreateTime><MsgType>text</MsgType><Content>hi</Content></xml>"
    )


def test_reply_text_escaping_round_trip():
    content = "a<b & 'c' \"d\"\nline"
    root = ET.fromstring(ReplyText(content=content).to_xml())
    assert root.tag == "xml"
    assert root.find("Content").text == content
    assert root.find("MsgType").text == "text"


def test_reply_create_time_defaults_to_now():
    reply = ReplyImage(media_id="m")
    assert reply.create_time > 1_600_000_000
    assert reply.msg_type == "image"


@pytest.mark.parametrize(
    "reply, section",
    [(ReplyImage(media_id="m1"), "Image"), (ReplyVoice(media_id="m1"), "Voice")],
)
def test_media_replies(reply, section):
    data = reply.to_dict()
    assert data[section] == {"MediaId": "m1"}
    root = ET.fromstring(reply.to_xml())
    assert root.find(f"{section}/MediaId").text == "m1"


def test_reply_video_dict():
    data = ReplyVideo(media_id="m", title="t", description="d").to_dict()
    assert data["MsgType"] == "video"
    assert data["Video"] == {"MediaId": "m", "Title": "t", "Description": "d"}


def test_reply_music_field_order():
    reply = ReplyMusic(
        title="t", description="d", thumb_media_id="th", music_url="mu", hq_music_url="hq"
    )
    root = ET.fromstring(reply.to_xml())
    music = root.find("Music")
    assert [child.tag for child in music] == [
        "Title",
        "Description",
        "ThumbMediaId",
        "MusicUrl",
        "HQMusicUrl",
    ]
    assert music.find("HQMusicUrl").text == "hq"


def test_reply_news():
    articles = [
        ReplyArticle(title="one", description="d1", pic_url="p1", url="u1"),
        ReplyArticle(title="two", description="d2", pic_url="p2", url="u2"),
    ]
    reply = ReplyNews(to_user_name="u", from_user_name="f", articles=articles)
    data = reply.to_dict()
    assert data["ArticleCount"] == 2
    assert [item["Title"] for item in data["Articles"]["item"]] == ["one", "two"]
    root = ET.fromstring(reply.to_xml())
    items = root.findall("Articles/item")
    assert len(items) == 2
    assert items[1].find("PicUrl").text == "p2"
    assert root.find("ArticleCount").text == "2"


def test_reply_news_empty():
    data = ReplyNews().to_dict()
    assert data["ArticleCount"] == 0
    assert data["Articles"] == {"item": []}


def test_send_article_keys():
    article = SendArticle(title="t", description="d", pic_url="p", url="u")
    assert article.to_dict() == {"title": "t", "description": "d", "picurl": "p", "url": "u"}