"""
Interfaces for the UMI event relay bridge.

Abstract base classes that define contracts for all pluggable components.
This enables dependency injection and mock-based testing without a serial
device, a network peer, or an audio card.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BridgeState(Enum):
    """Event bridge lifecycle states."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ConnectionState:
    """
    Outbound link state owned by the event bridge.

    ``connected`` is only True after a connect call returned success and is
    cleared as soon as a send fails.
    """
    connected: bool = False
    remote_host: str = ""
    remote_port: int = 0
    local_listen_port: int = 0


@dataclass
class PortInfo:
    """Information about a serial port."""
    device: str
    description: str
    hwid: str


@dataclass
class SerialConfig:
    """Serial port configuration (8-N-1, raw)."""
    port: str
    baud: int = 115200
    timeout: float = 0.2


class SerialPortInterface(ABC):
    """
    Abstract interface for serial port operations.

    Implementations:
    - RealSerialPort: Wraps pyserial for actual hardware
    - MockSerialPort: For unit testing without hardware
    """

    @abstractmethod
    def open(self, port: str, baud: int, timeout: float = 0.2) -> bool:
        """Open serial port. Returns True on success."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close serial port."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if port is currently open."""
        pass

    @abstractmethod
    def read_bytes(self, max_bytes: int) -> bytes:
        """
        Block until at least one byte arrives or the read timeout expires.

        Returns b'' on timeout or when the port is closed.
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write data to serial. Returns bytes written."""
        pass

    @staticmethod
    @abstractmethod
    def list_ports() -> List[PortInfo]:
        """List available serial ports."""
        pass


class DatagramSenderInterface(ABC):
    """
    Outbound datagram link to the control-plane peer.

    Implementations:
    - UdpDatagramSender: connected UDP socket
    - MockDatagramSender: scriptable connect/send outcomes
    """

    @abstractmethod
    def connect(self, host: str, port: int) -> bool:
        """Resolve and connect to the peer. Returns True on success."""
        pass

    @abstractmethod
    def send(self, data: bytes) -> bool:
        """Send one datagram. Returns True if the transport accepted it."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Release the outbound socket. Safe to call when not connected."""
        pass


DatagramHandler = Callable[[bytes], None]


class DatagramReceiverInterface(ABC):
    """
    Inbound datagram listener.

    The receiver owns its receive thread; the registered handler is invoked
    on that thread, once per datagram.
    """

    @abstractmethod
    def bind(self, port: int, host: str = "0.0.0.0") -> bool:
        """Bind the listen port and start receiving. Returns True on success."""
        pass

    @abstractmethod
    def set_handler(self, handler: Optional[DatagramHandler]) -> None:
        """Register the datagram handler, or unregister it with None."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop receiving, join the receive thread, and release the port."""
        pass


class FileSystemInterface(ABC):
    """
    Abstract interface for file system operations.

    Implementations:
    - RealFileSystem: Actual file I/O
    - MockFileSystem: In-memory for testing
    """

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Read entire file contents."""
        pass

    @abstractmethod
    def write_file(self, path: str, content: str, append: bool = False) -> None:
        """Write content to file. Creates parent dirs if needed."""
        pass

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Check if file exists."""
        pass

    @abstractmethod
    def ensure_dir(self, path: str) -> None:
        """Create directory and parents if they don't exist."""
        pass


class ClockInterface(ABC):
    """
    Abstract interface for time operations.

    Enables deterministic testing of time-dependent logic.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get current datetime."""
        pass

    @abstractmethod
    def monotonic_ms(self) -> int:
        """Monotonic milliseconds as an unsigned 32-bit counter (wraps)."""
        pass


class LoggerInterface(ABC):
    """
    Abstract interface for logging.

    Separates bridge logic from log output formatting.
    """

    @abstractmethod
    def debug(self, msg: str) -> None:
        """Log debug message."""
        pass

    @abstractmethod
    def info(self, msg: str) -> None:
        """Log info message."""
        pass

    @abstractmethod
    def warning(self, msg: str) -> None:
        """Log warning message."""
        pass

    @abstractmethod
    def error(self, msg: str) -> None:
        """Log error message."""
        pass


class AudioEngineInterface(ABC):
    """
    Audio device lifecycle.

    The bridge never exchanges data with the audio engine; the driver only
    brackets the process lifetime with start() and stop().
    """

    @abstractmethod
    def start(self, sample_rate: float, block_size: int, channels: int) -> bool:
        """Open the output device. Returns True on success."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Close the output device."""
        pass
