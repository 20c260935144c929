"""
UMI Bridge - sensor/indicator relay

Relays proximity transitions from a serial sensor to an OSC control surface
and applies /umi/led commands from it back to the device.
"""

from .interfaces import (
    BridgeState,
    ConnectionState,
    PortInfo,
    SerialConfig,
    SerialPortInterface,
    DatagramSenderInterface,
    DatagramReceiverInterface,
    FileSystemInterface,
    ClockInterface,
    LoggerInterface,
    AudioEngineInterface,
)

from .models import SensorEvent, HelloAnnouncement, CommandMessage, MessageContainer
from .osc_codec import CodecError, decode_datagram, encode_hello, encode_sensor_event, walk
from .line_framer import LineFramer
from .command_channel import CommandChannel
from .serial_service import SerialService
from .reconnection import RetryingSender
from .bridge import EventBridge
from .config import BridgeConfig, load_config

__all__ = [
    "BridgeState",
    "ConnectionState",
    "PortInfo",
    "SerialConfig",
    "SerialPortInterface",
    "DatagramSenderInterface",
    "DatagramReceiverInterface",
    "FileSystemInterface",
    "ClockInterface",
    "LoggerInterface",
    "AudioEngineInterface",
    "SensorEvent",
    "HelloAnnouncement",
    "CommandMessage",
    "MessageContainer",
    "CodecError",
    "decode_datagram",
    "encode_hello",
    "encode_sensor_event",
    "walk",
    "LineFramer",
    "CommandChannel",
    "SerialService",
    "RetryingSender",
    "EventBridge",
    "BridgeConfig",
    "load_config",
]
