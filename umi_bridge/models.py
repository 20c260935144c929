"""Data model for the event relay bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class SensorEvent:
    """A detection transition observed on the serial line."""

    device_id: str
    sequence: int
    detected: bool
    timestamp_ms: int


@dataclass(frozen=True)
class HelloAnnouncement:
    """Periodic liveness broadcast advertising identity and the inbound port."""

    device_id: str
    listen_port: int
    hello_sequence: int


@dataclass(frozen=True)
class CommandMessage:
    """An inbound instruction: address path plus ordered typed arguments.

    Arguments keep their decoded Python types: ``int`` (int32, and ``bool``
    for T/F tags), ``float`` (float32), ``str`` and ``bytes`` (blob).
    """

    address: str
    arguments: tuple[Any, ...] = ()

    def describe(self) -> str:
        """Render as ``addr=/x argc=N  arg0=int:1 ...`` for diagnostics."""
        parts = [f"addr={self.address} argc={len(self.arguments)}"]
        for i, arg in enumerate(self.arguments):
            if isinstance(arg, bool):
                parts.append(f"arg{i}=int:{int(arg)}")
            elif isinstance(arg, int):
                parts.append(f"arg{i}=int:{arg}")
            elif isinstance(arg, float):
                parts.append(f"arg{i}=float:{arg}")
            elif isinstance(arg, str):
                parts.append(f"arg{i}=str:{arg}")
            elif isinstance(arg, (bytes, bytearray)):
                parts.append(f"arg{i}=blob({len(arg)}B)")
            else:
                parts.append(f"arg{i}=?")
        return "  ".join(parts)


@dataclass(frozen=True)
class MessageContainer:
    """An ordered bundle of messages and/or nested containers."""

    elements: tuple[Union[CommandMessage, "MessageContainer"], ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)


Packet = Union[CommandMessage, MessageContainer]
