import pytest

from sochma.core.exceptions import NormalizationError
from sochma.schemas.webhook import (
    ChoiceKind,
    EventKind,
    decode_choice,
    encode_choice,
    normalize,
    parse_command,
)

from conftest import make_callback_update, make_text_update


def test_text_message():
    event = normalize(make_text_update(111, "+14155550123", message_id=7, chat_id=222))

    assert event.sender_id == 111
    assert event.chat_id == 222
    assert event.kind == EventKind.TEXT
    assert event.payload == "+14155550123"
    assert event.provider_message_id == "msg:222:7"
    assert event.command is None
    assert event.choice is None
    assert event.seed.display_name == "Jordan"
    assert event.seed.language_code == "en"
    assert event.seed.is_bot is False


def test_edited_message_is_text():
    update = make_text_update(111, "Jordan Lee", message_id=9)
    update["edited_message"] = update.pop("message")

    event = normalize(update)

    assert event.kind == EventKind.TEXT
    assert event.payload == "Jordan Lee"


def test_command_is_parsed():
    event = normalize(make_text_update(111, "/Start@SochmaBot hello"))

    assert event.kind == EventKind.TEXT
    assert event.command == "/start"


def test_callback_query_decodes_choice():
    event = normalize(make_callback_update(111, "role:investor", callback_id="abc"))

    assert event.kind == EventKind.CALLBACK
    assert event.payload == "role:investor"
    assert event.provider_message_id == "cbq:abc"
    assert event.callback_query_id == "abc"
    assert event.choice.kind == ChoiceKind.ROLE
    assert event.choice.value == "investor"


def test_unknown_callback_data_is_menu():
    choice = decode_choice("something_else")

    assert choice.kind == ChoiceKind.MENU
    assert choice.value == "something_else"


def test_encode_choice():
    assert encode_choice(ChoiceKind.AGENDA, "ack") == "agenda:ack"
    assert decode_choice(encode_choice(ChoiceKind.COMPLETE, "confirm")).kind == ChoiceKind.COMPLETE


def test_photo_is_unsupported():
    update = make_text_update(111, "ignored")
    del update["message"]["text"]
    update["message"]["photo"] = [{"file_id": "x", "width": 90, "height": 90}]

    event = normalize(update)

    assert event.kind == EventKind.UNSUPPORTED
    assert event.payload == ""


def test_shared_contact_becomes_phone_text():
    update = make_text_update(111, "ignored")
    del update["message"]["text"]
    update["message"]["contact"] = {"phone_number": "14155550123", "first_name": "Jordan", "user_id": 111}

    event = normalize(update)

    assert event.kind == EventKind.TEXT
    assert event.payload == "+14155550123"


def test_display_name_falls_back_to_username_then_id():
    update = make_text_update(111, "hi", first_name="")
    update["message"]["from"]["username"] = "jlee"
    assert normalize(update).seed.display_name == "jlee"

    update = make_text_update(111, "hi", first_name="")
    assert normalize(update).seed.display_name == "111"


def test_missing_sender_raises():
    update = make_text_update(111, "hi")
    del update["message"]["from"]

    with pytest.raises(NormalizationError):
        normalize(update)


def test_unknown_update_type_raises():
    with pytest.raises(NormalizationError):
        normalize({"update_id": 1, "poll": {"id": "p1"}})


def test_non_object_raises():
    with pytest.raises(NormalizationError):
        normalize(["not", "an", "update"])


@pytest.mark.parametrize("text,expected", [
    ("/help", "/help"),
    ("/profile@SochmaBot", "/profile"),
    ("  /INFO extra", "/info"),
    ("hello", None),
])
def test_parse_command(text, expected):
    assert parse_command(text) == expected
