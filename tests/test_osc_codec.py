"""
Tests for the OSC wire codec.

Outbound messages are checked by parsing them back with python-osc;
inbound decoding is fed datagrams built with python-osc's builders.
"""

import struct

import pytest
from pythonosc.osc_bundle_builder import OscBundleBuilder, IMMEDIATELY
from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import OscMessageBuilder

from umi_bridge.models import CommandMessage, HelloAnnouncement, MessageContainer, SensorEvent
from umi_bridge.osc_codec import (
    CodecError,
    MAX_CONTAINER_DEPTH,
    decode_datagram,
    encode_hello,
    encode_sensor_event,
    led_state,
    to_int32,
    walk,
)


def _message(address, *args):
    builder = OscMessageBuilder(address=address)
    for arg in args:
        if isinstance(arg, tuple):
            builder.add_arg(*arg)
        else:
            builder.add_arg(arg)
    return builder.build()


def _bundle(*contents):
    builder = OscBundleBuilder(IMMEDIATELY)
    for content in contents:
        builder.add_content(content)
    return builder.build()


def _nested(depth, leaf):
    """A bundle nested ``depth`` levels deep with one message at the bottom."""
    packet = _bundle(leaf)
    for _ in range(depth - 1):
        packet = _bundle(packet)
    return packet


class TestEncode:
    """Tests for outbound encoding."""

    def test_sensor_event_layout(self):
        """/umi/prox carries id, seq, detected, timestamp in that order."""
        dgram = encode_sensor_event(SensorEvent("pi-01", 7, True, 123456))
        msg = OscMessage(dgram)
        assert msg.address == "/umi/prox"
        assert msg.params == ["pi-01", 7, 1, 123456]

    def test_sensor_event_clear(self):
        dgram = encode_sensor_event(SensorEvent("pi-01", 8, False, 0))
        assert OscMessage(dgram).params[2] == 0

    def test_sensor_event_type_tags(self):
        """All numeric fields are int32."""
        dgram = encode_sensor_event(SensorEvent("pi-01", 1, True, 5))
        assert b",siii\x00" in dgram

    def test_wrapped_counters_encode(self):
        """uint32 values above int32 range wrap instead of failing."""
        dgram = encode_sensor_event(SensorEvent("pi-01", 0xFFFFFFFF, True, 0x80000000))
        params = OscMessage(dgram).params
        assert params[1] == -1
        assert params[3] == -(2 ** 31)

    def test_hello_layout(self):
        """/umi/hello carries id, listen port, hello sequence."""
        dgram = encode_hello(HelloAnnouncement("pi-01", 9100, 3))
        msg = OscMessage(dgram)
        assert msg.address == "/umi/hello"
        assert msg.params == ["pi-01", 9100, 3]

    def test_to_int32(self):
        assert to_int32(0) == 0
        assert to_int32(2 ** 31 - 1) == 2 ** 31 - 1
        assert to_int32(2 ** 31) == -(2 ** 31)
        assert to_int32(2 ** 32) == 0
        assert to_int32(-1) == -1


class TestDecode:
    """Tests for inbound decoding."""

    def test_single_message(self):
        packet = decode_datagram(_message("/umi/led", 1).dgram)
        assert packet == CommandMessage("/umi/led", (1,))

    def test_argument_types_preserved(self):
        """int, float, string and blob arguments keep their Python types."""
        dgram = _message(
            "/x",
            (3, OscMessageBuilder.ARG_TYPE_INT),
            (0.5, OscMessageBuilder.ARG_TYPE_FLOAT),
            ("hi", OscMessageBuilder.ARG_TYPE_STRING),
            (b"\x01\x02", OscMessageBuilder.ARG_TYPE_BLOB),
        ).dgram
        packet = decode_datagram(dgram)
        assert packet.arguments == (3, 0.5, "hi", b"\x01\x02")

    def test_bundle_decodes_in_order(self):
        dgram = _bundle(_message("/a", 1), _message("/b", 2)).dgram
        packet = decode_datagram(dgram)
        assert isinstance(packet, MessageContainer)
        assert [m.address for m in packet] == ["/a", "/b"]

    def test_nested_bundles_walk_depth_first(self):
        """Messages are visited depth-first, left to right."""
        inner = _bundle(_message("/2"), _bundle(_message("/3")), _message("/4"))
        outer = _bundle(_message("/1"), inner, _message("/5"))

        seen = []
        count = walk(decode_datagram(outer.dgram), lambda m: seen.append(m.address))

        assert count == 5
        assert seen == ["/1", "/2", "/3", "/4", "/5"]

    def test_empty_bundle(self):
        packet = decode_datagram(_bundle().dgram)
        assert isinstance(packet, MessageContainer)
        assert len(packet) == 0
        assert walk(packet, lambda m: None) == 0

    def test_max_depth_accepted(self):
        dgram = _nested(MAX_CONTAINER_DEPTH, _message("/deep", 1)).dgram
        seen = []
        assert walk(decode_datagram(dgram), seen.append) == 1
        assert seen[0].address == "/deep"

    def test_excessive_depth_rejected(self):
        dgram = _nested(MAX_CONTAINER_DEPTH + 1, _message("/deep", 1)).dgram
        with pytest.raises(CodecError):
            decode_datagram(dgram)


class TestMalformed:
    """Malformed datagrams raise CodecError and nothing else."""

    @pytest.mark.parametrize("dgram", [
        b"",
        b"hello",
        b"\x00\x00\x00\x00",
        b"#bundle\x00",
        b"#bundle\x00" + b"\x00" * 4,
    ])
    def test_garbage(self, dgram):
        with pytest.raises(CodecError):
            decode_datagram(dgram)

    def test_truncated_message_argument(self):
        dgram = _message("/umi/led", 1).dgram
        with pytest.raises(CodecError):
            decode_datagram(dgram[:-2])

    def test_negative_element_size(self):
        header = _bundle().dgram
        with pytest.raises(CodecError):
            decode_datagram(header + struct.pack(">i", -4) + b"\x00" * 8)

    def test_element_size_past_end(self):
        msg = _message("/a", 1).dgram
        dgram = _bundle().dgram + struct.pack(">i", len(msg) + 8) + msg
        with pytest.raises(CodecError):
            decode_datagram(dgram)

    def test_element_not_osc(self):
        dgram = _bundle().dgram + struct.pack(">i", 4) + b"abcd"
        with pytest.raises(CodecError):
            decode_datagram(dgram)

    def test_codec_error_is_value_error(self):
        assert issubclass(CodecError, ValueError)


class TestLedState:
    """Interpretation of /umi/led arguments."""

    @pytest.mark.parametrize("arg,expected", [
        (1, True),
        (0, False),
        (-3, True),
        (True, True),
        (False, False),
        (0.0, False),
        (0.4, False),
        (0.5, True),
        (-0.5, True),
        (-0.49, False),
        (2.7, True),
        (float("nan"), False),
        (float("inf"), True),
        ("on", False),
        (b"\x01", False),
    ])
    def test_argument(self, arg, expected):
        assert led_state(CommandMessage("/umi/led", (arg,))) is expected

    def test_no_argument(self):
        assert led_state(CommandMessage("/umi/led")) is None

    def test_only_first_argument_counts(self):
        assert led_state(CommandMessage("/umi/led", (0, 1))) is False

    def test_float32_from_wire(self):
        """A float32 0.0 from the wire means off."""
        packet = decode_datagram(_message("/umi/led", (0.0, OscMessageBuilder.ARG_TYPE_FLOAT)).dgram)
        assert led_state(packet) is False


class TestDescribe:
    """Diagnostic rendering of decoded messages."""

    def test_describe_all_types(self):
        msg = CommandMessage("/umi/led", (1, 2.5, "x", b"ab"))
        assert msg.describe() == (
            "addr=/umi/led argc=4  arg0=int:1  arg1=float:2.5  arg2=str:x  arg3=blob(2B)"
        )

    def test_describe_no_args(self):
        assert CommandMessage("/ping").describe() == "addr=/ping argc=0"
