"""
OSC wire codec for the event relay bridge.

Outbound:
    /umi/prox   s:device_id i:sequence i:detected(0|1) i:timestamp_ms
    /umi/hello  s:device_id i:listen_port i:hello_sequence

Inbound:
    /umi/led    i|f  truthy = indicator on
    anything else is decoded, diagnosed and ignored by the bridge

Messages are built and parsed with python-osc. Bundle framing is checked
before python-osc parses it, so malformed or absurdly nested input is
rejected up front instead of being walked.
"""

from __future__ import annotations

import math
import struct
from typing import Callable, Optional

from pythonosc.osc_bundle import OscBundle, ParseError as BundleParseError
from pythonosc.osc_message import OscMessage, ParseError as MessageParseError
from pythonosc.osc_message_builder import OscMessageBuilder, BuildError

from .models import CommandMessage, HelloAnnouncement, MessageContainer, Packet, SensorEvent

PROX_ADDRESS = "/umi/prox"
HELLO_ADDRESS = "/umi/hello"
LED_ADDRESS = "/umi/led"

MAX_CONTAINER_DEPTH = 32

_BUNDLE_PREFIX = b"#bundle\x00"
_BUNDLE_HEADER_SIZE = 16  # "#bundle\0" + 8-byte time tag
_SIZE_FIELD = struct.Struct(">i")


class CodecError(ValueError):
    """Raised for datagrams that cannot be encoded or decoded."""


def to_int32(value: int) -> int:
    """Wrap an integer into the signed 32-bit range (two's complement)."""
    return ((int(value) + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def _build(address: str, args: list[tuple[object, str]]) -> bytes:
    builder = OscMessageBuilder(address=address)
    for value, arg_type in args:
        builder.add_arg(value, arg_type)
    try:
        return builder.build().dgram
    except BuildError as e:
        raise CodecError(f"cannot encode {address}: {e}") from e


def encode_sensor_event(event: SensorEvent) -> bytes:
    return _build(PROX_ADDRESS, [
        (event.device_id, OscMessageBuilder.ARG_TYPE_STRING),
        (to_int32(event.sequence), OscMessageBuilder.ARG_TYPE_INT),
        (1 if event.detected else 0, OscMessageBuilder.ARG_TYPE_INT),
        (to_int32(event.timestamp_ms), OscMessageBuilder.ARG_TYPE_INT),
    ])


def encode_hello(hello: HelloAnnouncement) -> bytes:
    return _build(HELLO_ADDRESS, [
        (hello.device_id, OscMessageBuilder.ARG_TYPE_STRING),
        (to_int32(hello.listen_port), OscMessageBuilder.ARG_TYPE_INT),
        (to_int32(hello.hello_sequence), OscMessageBuilder.ARG_TYPE_INT),
    ])


def _check_bundle_framing(dgram: bytes, depth: int) -> None:
    """Validate element sizes and nesting depth of a bundle datagram."""
    if depth > MAX_CONTAINER_DEPTH:
        raise CodecError(f"bundle nesting exceeds {MAX_CONTAINER_DEPTH} levels")
    if len(dgram) < _BUNDLE_HEADER_SIZE:
        raise CodecError("truncated bundle header")

    index = _BUNDLE_HEADER_SIZE
    while index < len(dgram):
        if index + _SIZE_FIELD.size > len(dgram):
            raise CodecError("truncated bundle element size")
        (size,) = _SIZE_FIELD.unpack_from(dgram, index)
        index += _SIZE_FIELD.size
        if size <= 0 or size % 4 or index + size > len(dgram):
            raise CodecError(f"invalid bundle element size {size}")
        element = dgram[index:index + size]
        if element.startswith(_BUNDLE_PREFIX):
            _check_bundle_framing(element, depth + 1)
        elif not element.startswith(b"/"):
            raise CodecError("bundle element is neither a message nor a bundle")
        index += size


def _from_osc_message(msg: OscMessage) -> CommandMessage:
    return CommandMessage(address=msg.address, arguments=tuple(msg.params))


def _from_osc_bundle(bundle: OscBundle) -> MessageContainer:
    elements = []
    for content in bundle:
        if isinstance(content, OscBundle):
            elements.append(_from_osc_bundle(content))
        else:
            elements.append(_from_osc_message(content))
    return MessageContainer(elements=tuple(elements))


def decode_datagram(dgram: bytes) -> Packet:
    """Decode one inbound datagram into a message or a container.

    Raises:
        CodecError: the datagram is not a well-formed OSC message or bundle.
    """
    if not dgram:
        raise CodecError("empty datagram")
    try:
        if dgram.startswith(_BUNDLE_PREFIX):
            _check_bundle_framing(dgram, depth=1)
            return _from_osc_bundle(OscBundle(dgram))
        if OscMessage.dgram_is_message(dgram):
            return _from_osc_message(OscMessage(dgram))
    except (BundleParseError, MessageParseError, struct.error, IndexError) as e:
        raise CodecError(f"malformed datagram: {e}") from e
    raise CodecError("datagram is neither an OSC message nor a bundle")


def walk(packet: Packet, visit: Callable[[CommandMessage], None], _depth: int = 0) -> int:
    """Visit every message depth-first, left to right. Returns the count visited."""
    if isinstance(packet, CommandMessage):
        visit(packet)
        return 1
    if _depth >= MAX_CONTAINER_DEPTH:
        raise CodecError(f"bundle nesting exceeds {MAX_CONTAINER_DEPTH} levels")
    count = 0
    for element in packet:
        count += walk(element, visit, _depth + 1)
    return count


def _round_half_away(value: float) -> int:
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return 1
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def led_state(message: CommandMessage) -> Optional[bool]:
    """Interpret a /umi/led command.

    Returns None when the message carries no argument. int32 (and T/F)
    arguments are on when non-zero; float32 is rounded half away from zero
    first; any other argument type means off.
    """
    if not message.arguments:
        return None
    arg = message.arguments[0]
    if isinstance(arg, int):
        return arg != 0
    if isinstance(arg, float):
        return _round_half_away(arg) != 0
    return False
