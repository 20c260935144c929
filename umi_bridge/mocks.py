"""
Mock implementations for testing.

These classes implement the abstract interfaces with in-memory behavior
suitable for unit testing without a serial device, a network or audio.
"""

from typing import Optional, List, Dict, Tuple
from datetime import datetime, timedelta
from collections import deque
import queue
import threading

from .interfaces import (
    SerialPortInterface, DatagramSenderInterface, DatagramReceiverInterface,
    DatagramHandler, FileSystemInterface, ClockInterface, LoggerInterface,
    AudioEngineInterface, PortInfo
)


class MockSerialPort(SerialPortInterface):
    """
    Mock serial port for testing.

    Provides a queue-based simulation of serial communication.
    Test code can inject data with inject_bytes()/inject_line() and read
    written data with get_sent(). read_bytes() blocks up to the open
    timeout, like a real port.
    """

    def __init__(self):
        self._is_open = False
        self._port = ""
        self._baud = 0
        self._timeout = 0.05
        self._rx: "queue.Queue[bytes]" = queue.Queue()
        self._tx_buffer: List[bytes] = []
        self._tx_lock = threading.Lock()
        self._fail_on_open = False
        self._fail_writes = False
        self._read_error: Optional[Exception] = None

    @property
    def port(self) -> str:
        return self._port

    @property
    def baud(self) -> int:
        return self._baud

    def open(self, port: str, baud: int, timeout: float = 0.2) -> bool:
        if self._fail_on_open:
            return False
        self._port = port
        self._baud = baud
        self._timeout = min(timeout, 0.05)
        self._is_open = True
        return True

    def close(self) -> None:
        self._is_open = False

    def is_open(self) -> bool:
        return self._is_open

    def read_bytes(self, max_bytes: int) -> bytes:
        if not self._is_open:
            return b""
        if self._read_error is not None:
            error, self._read_error = self._read_error, None
            raise error
        try:
            return self._rx.get(timeout=self._timeout)[:max_bytes]
        except queue.Empty:
            return b""

    def write(self, data: bytes) -> int:
        if not self._is_open or self._fail_writes:
            return 0
        with self._tx_lock:
            self._tx_buffer.append(data)
        return len(data)

    @staticmethod
    def list_ports() -> List[PortInfo]:
        return []

    # Test helper methods

    def inject_line(self, line: str) -> None:
        """Inject a line into the receive buffer (for testing)."""
        self._rx.put((line + "\n").encode())

    def inject_bytes(self, data: bytes) -> None:
        """Inject raw bytes into the receive buffer."""
        self._rx.put(data)

    def get_sent(self) -> List[bytes]:
        """Get all data sent via write() (for testing)."""
        with self._tx_lock:
            return self._tx_buffer.copy()

    def clear_sent(self) -> None:
        """Clear the sent buffer."""
        with self._tx_lock:
            self._tx_buffer.clear()

    def set_fail_on_open(self, fail: bool) -> None:
        """Make open() fail (for testing error handling)."""
        self._fail_on_open = fail

    def set_fail_writes(self, fail: bool) -> None:
        """Make write() report zero bytes written."""
        self._fail_writes = fail

    def set_read_error(self, error: Exception) -> None:
        """Raise ``error`` from the next read_bytes() call."""
        self._read_error = error


class MockDatagramSender(DatagramSenderInterface):
    """
    Scriptable outbound link.

    connect() and send() consume scripted results (True/False) when any are
    queued, falling back to the configured default. Every call is recorded.
    """

    def __init__(self, connect_ok: bool = True, send_ok: bool = True):
        self._connect_default = connect_ok
        self._send_default = send_ok
        self._connect_script: deque = deque()
        self._send_script: deque = deque()
        self._lock = threading.Lock()
        self._connected = False

        self.connect_calls: List[Tuple[str, int]] = []
        self.send_calls: List[bytes] = []
        self.sent: List[bytes] = []
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self, host: str, port: int) -> bool:
        with self._lock:
            self.connect_calls.append((host, port))
            ok = self._connect_script.popleft() if self._connect_script else self._connect_default
            self._connected = ok
            return ok

    def send(self, data: bytes) -> bool:
        with self._lock:
            self.send_calls.append(data)
            if not self._connected:
                return False
            ok = self._send_script.popleft() if self._send_script else self._send_default
            if ok:
                self.sent.append(data)
            return ok

    def disconnect(self) -> None:
        with self._lock:
            self.disconnect_calls += 1
            self._connected = False

    # Test helper methods

    def script_connects(self, *results: bool) -> None:
        """Queue outcomes for the next connect() calls."""
        self._connect_script.extend(results)

    def script_sends(self, *results: bool) -> None:
        """Queue outcomes for the next send() calls."""
        self._send_script.extend(results)

    def set_defaults(self, connect_ok: Optional[bool] = None, send_ok: Optional[bool] = None) -> None:
        if connect_ok is not None:
            self._connect_default = connect_ok
        if send_ok is not None:
            self._send_default = send_ok

    def clear(self) -> None:
        with self._lock:
            self.connect_calls.clear()
            self.send_calls.clear()
            self.sent.clear()
            self.disconnect_calls = 0


class MockDatagramReceiver(DatagramReceiverInterface):
    """
    In-memory listener.

    inject() delivers a datagram synchronously to the registered handler on
    the calling thread, standing in for the transport's receive thread.
    """

    def __init__(self, fail_bind: bool = False):
        self._fail_bind = fail_bind
        self._handler: Optional[DatagramHandler] = None
        self.bound_port: Optional[int] = None
        self.bound_host: Optional[str] = None
        self.bind_calls = 0
        self.close_calls = 0

    @property
    def handler(self) -> Optional[DatagramHandler]:
        return self._handler

    def bind(self, port: int, host: str = "0.0.0.0") -> bool:
        self.bind_calls += 1
        if self._fail_bind:
            return False
        self.bound_port = port
        self.bound_host = host
        return True

    def set_handler(self, handler: Optional[DatagramHandler]) -> None:
        self._handler = handler

    def close(self) -> None:
        self.close_calls += 1
        self.bound_port = None

    # Test helper methods

    def inject(self, data: bytes) -> bool:
        """Deliver a datagram. Returns False if nothing is listening."""
        handler = self._handler
        if handler is None or self.bound_port is None:
            return False
        handler(data)
        return True

    def set_fail_bind(self, fail: bool) -> None:
        self._fail_bind = fail


class MockFileSystem(FileSystemInterface):
    """
    In-memory file system for testing.

    All file operations are performed in memory without touching disk.
    """

    def __init__(self):
        self._files: Dict[str, str] = {}
        self._dirs: set = set()

    def read_file(self, path: str) -> str:
        if path not in self._files:
            raise FileNotFoundError(f"No such file: {path}")
        return self._files[path]

    def write_file(self, path: str, content: str, append: bool = False) -> None:
        if append and path in self._files:
            self._files[path] += content
        else:
            self._files[path] = content

    def file_exists(self, path: str) -> bool:
        return path in self._files

    def ensure_dir(self, path: str) -> None:
        self._dirs.add(path)

    # Test helper methods

    def get_all_files(self) -> Dict[str, str]:
        """Get dictionary of all files and contents."""
        return self._files.copy()


class MockClock(ClockInterface):
    """
    Controllable clock for testing.

    Time can be advanced manually for deterministic testing of
    time-dependent behavior.
    """

    def __init__(self, start_time: Optional[datetime] = None, start_ms: int = 0):
        self._current_time = start_time or datetime(2025, 1, 1, 0, 0, 0)
        self._ms = start_ms

    def now(self) -> datetime:
        return self._current_time

    def monotonic_ms(self) -> int:
        return self._ms & 0xFFFFFFFF

    # Test helper methods

    def advance(self, seconds: float) -> None:
        """Advance time by specified seconds."""
        self._current_time += timedelta(seconds=seconds)
        self._ms += int(seconds * 1000)

    def set_ms(self, ms: int) -> None:
        """Set the monotonic millisecond counter."""
        self._ms = ms


class MockLogger(LoggerInterface):
    """
    Logger that captures all messages for testing.
    """

    def __init__(self):
        self._messages: List[tuple] = []
        self._lock = threading.Lock()

    def _append(self, level: str, msg: str) -> None:
        with self._lock:
            self._messages.append((level, msg))

    def debug(self, msg: str) -> None:
        self._append("DEBUG", msg)

    def info(self, msg: str) -> None:
        self._append("INFO", msg)

    def warning(self, msg: str) -> None:
        self._append("WARNING", msg)

    def error(self, msg: str) -> None:
        self._append("ERROR", msg)

    # Test helper methods

    def get_messages(self, level: Optional[str] = None) -> List[tuple]:
        """Get logged messages, optionally filtered by level."""
        with self._lock:
            if level:
                return [(l, m) for l, m in self._messages if l == level]
            return self._messages.copy()

    def clear(self) -> None:
        """Clear all logged messages."""
        with self._lock:
            self._messages.clear()

    def contains(self, substring: str, level: Optional[str] = None) -> bool:
        """Check if any message contains substring."""
        messages = self.get_messages(level)
        return any(substring in m for _, m in messages)


class MockAudioEngine(AudioEngineInterface):
    """Audio engine that records lifecycle calls."""

    def __init__(self, fail_start: bool = False):
        self._fail_start = fail_start
        self.start_calls: List[Tuple[float, int, int]] = []
        self.stop_calls = 0

    def start(self, sample_rate: float, block_size: int, channels: int) -> bool:
        self.start_calls.append((sample_rate, block_size, channels))
        return not self._fail_start

    def stop(self) -> None:
        self.stop_calls += 1
