import json

import pytest
from pydantic import ValidationError

from newsline.models.telephony_schemas import (
    ClearMessage,
    ConnectedMessage,
    MarkMessage,
    MediaMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
    StartMessage,
    StopMessage,
    StreamStart,
    UnrecognizedTelephonyMessage,
    decode_telephony_message,
    encode_telephony_message,
)


def test_decode_start_message():
    data = json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": "MZ123",
        "start": {
            "streamSid": "MZ123",
            "callSid": "CA456",
            "accountSid": "AC789",
            "tracks": ["inbound"],
            "customParameters": {"caller": "+15551234567"},
        },
    })
    message = decode_telephony_message(data)
    assert isinstance(message, StartMessage)
    assert message.start.stream_sid == "MZ123"
    assert message.start.call_sid == "CA456"
    assert message.start.custom_parameters == {"caller": "+15551234567"}


def test_decode_media_message_defaults_to_inbound_track():
    message = decode_telephony_message(
        json.dumps({"event": "media", "media": {"payload": "//79/A=="}})
    )
    assert isinstance(message, MediaMessage)
    assert message.media.payload == "//79/A=="
    assert message.media.track == "inbound"


def test_decode_other_known_events():
    assert isinstance(
        decode_telephony_message('{"event": "connected", "protocol": "Call"}'), ConnectedMessage
    )
    assert isinstance(decode_telephony_message('{"event": "stop", "streamSid": "MZ1"}'), StopMessage)
    mark = decode_telephony_message('{"event": "mark", "mark": {"name": "greeting"}}')
    assert isinstance(mark, MarkMessage)
    assert mark.mark["name"] == "greeting"


def test_decode_unknown_event_is_unrecognized():
    message = decode_telephony_message('{"event": "dtmf", "dtmf": {"digit": "1"}}')
    assert isinstance(message, UnrecognizedTelephonyMessage)
    assert message.event == "dtmf"
    assert message.raw["dtmf"] == {"digit": "1"}


@pytest.mark.parametrize(
    "data",
    [
        "not json",
        "[1, 2, 3]",
        '{"event": "start", "start": {"streamSid": "   "}}',
        '{"event": "media", "media": {}}',
    ],
)
def test_decode_rejects_malformed_frames(data):
    assert decode_telephony_message(data) is None


def test_stream_start_requires_handle():
    with pytest.raises(ValidationError):
        StreamStart(streamSid="")


def test_encode_outbound_media_uses_wire_names():
    message = OutboundMediaMessage(stream_sid="MZ1", media=OutboundMediaPayload(payload="AAA="))
    assert json.loads(encode_telephony_message(message)) == {
        "event": "media",
        "streamSid": "MZ1",
        "media": {"payload": "AAA="},
    }


def test_encode_clear():
    assert json.loads(encode_telephony_message(ClearMessage(stream_sid="MZ1"))) == {
        "event": "clear",
        "streamSid": "MZ1",
    }
