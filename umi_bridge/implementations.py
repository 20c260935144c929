"""
Real implementations of interfaces for production use.

These classes wrap actual system resources (serial ports, UDP sockets,
files, the clock) and implement the abstract interfaces.
"""

from typing import Optional, List
from datetime import datetime
import logging
import os
import socket
import threading
import time

import serial
import serial.tools.list_ports

from .interfaces import (
    SerialPortInterface, DatagramSenderInterface, DatagramReceiverInterface,
    DatagramHandler, FileSystemInterface, ClockInterface, LoggerInterface,
    AudioEngineInterface, PortInfo
)

logger = logging.getLogger(__name__)

MAX_DATAGRAM_SIZE = 65535


class RealSerialPort(SerialPortInterface):
    """
    Real serial port implementation using pyserial.

    Opened 8-N-1 with no flow control. read_bytes() blocks for the first
    byte (up to the poll timeout) and then drains whatever is waiting.
    """

    def __init__(self):
        self._serial: Optional[serial.Serial] = None

    def open(self, port: str, baud: int, timeout: float = 0.2) -> bool:
        try:
            self._serial = serial.Serial(
                port,
                baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
            return True
        except (serial.SerialException, OSError, ValueError) as e:
            logger.debug("Serial open failed for %s: %s", port, e)
            self._serial = None
            return False

    def close(self) -> None:
        if self._serial:
            try:
                self._serial.close()
            except (serial.SerialException, OSError):
                pass
            self._serial = None

    def is_open(self) -> bool:
        if self._serial is None:
            return False
        try:
            return self._serial.is_open
        except (serial.SerialException, OSError):
            return False

    def read_bytes(self, max_bytes: int) -> bytes:
        if not self._serial or max_bytes <= 0:
            return b""
        first = self._serial.read(1)
        if not first:
            return b""
        waiting = self._serial.in_waiting
        if waiting and max_bytes > 1:
            return first + self._serial.read(min(waiting, max_bytes - 1))
        return first

    def write(self, data: bytes) -> int:
        if not self._serial:
            return 0
        try:
            written = self._serial.write(data)
            self._serial.flush()
            return written or 0
        except (serial.SerialException, OSError):
            return 0

    @staticmethod
    def list_ports() -> List[PortInfo]:
        ports = []
        for p in serial.tools.list_ports.comports():
            ports.append(PortInfo(
                device=p.device,
                description=p.description or "",
                hwid=p.hwid or "",
            ))
        return ports


class UdpDatagramSender(DatagramSenderInterface):
    """
    Connected UDP socket towards the control-plane peer.

    connect() resolves the host; a later send() can still fail (for example
    ICMP port unreachable surfaces as ConnectionRefusedError), which the
    caller treats as a send failure.
    """

    def __init__(self):
        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()

    def connect(self, host: str, port: int) -> bool:
        with self._lock:
            self._close_locked()
            try:
                infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
            except (socket.gaierror, UnicodeError) as e:
                logger.debug("Resolve %s:%s failed: %s", host, port, e)
                return False

            for family, socktype, proto, _, addr in infos:
                sock = None
                try:
                    sock = socket.socket(family, socktype, proto)
                    sock.connect(addr)
                except OSError as e:
                    logger.debug("UDP connect %s failed: %s", addr, e)
                    if sock is not None:
                        sock.close()
                    continue
                self._sock = sock
                return True
            return False

    def send(self, data: bytes) -> bool:
        with self._lock:
            if self._sock is None:
                return False
            try:
                return self._sock.send(data) == len(data)
            except OSError as e:
                logger.debug("UDP send failed: %s", e)
                return False

    def disconnect(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None


class UdpDatagramReceiver(DatagramReceiverInterface):
    """
    UDP listener with its own receive thread.

    The socket uses a short timeout so close() can stop and join the
    thread promptly. Handler exceptions are logged and never end the loop.
    """

    def __init__(self, poll_timeout: float = 0.2):
        self._poll_timeout = poll_timeout
        self._sock: Optional[socket.socket] = None
        self._handler: Optional[DatagramHandler] = None
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def bound_port(self) -> Optional[int]:
        """Actual bound port (useful when binding port 0)."""
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    def bind(self, port: int, host: str = "0.0.0.0") -> bool:
        if self._sock is not None:
            return False
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError as e:
            logger.error("Bind UDP %s:%d failed: %s", host, port, e)
            sock.close()
            return False
        sock.settimeout(self._poll_timeout)

        self._sock = sock
        self._running.set()
        self._thread = threading.Thread(
            target=self._receive_loop,
            name="umi-osc-rx",
            daemon=True,
        )
        self._thread.start()
        return True

    def set_handler(self, handler: Optional[DatagramHandler]) -> None:
        self._handler = handler

    def close(self) -> None:
        self._running.clear()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _receive_loop(self) -> None:
        sock = self._sock
        while self._running.is_set():
            try:
                data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._running.is_set():
                    logger.warning("UDP receive error: %s", e)
                continue

            handler = self._handler
            if handler is None or not self._running.is_set():
                continue
            try:
                handler(data)
            except Exception:
                logger.exception("Datagram handler failed (from %s)", addr)


class RealFileSystem(FileSystemInterface):
    """
    Real file system implementation.
    """

    def read_file(self, path: str) -> str:
        with open(path, "r") as f:
            return f.read()

    def write_file(self, path: str, content: str, append: bool = False) -> None:
        parent = os.path.dirname(path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)

        mode = "a" if append else "w"
        with open(path, mode) as f:
            f.write(content)
            f.flush()

    def file_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def ensure_dir(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)


class RealClock(ClockInterface):
    """
    Real clock implementation using system time.
    """

    def now(self) -> datetime:
        return datetime.now()

    def monotonic_ms(self) -> int:
        return int(time.monotonic() * 1000) & 0xFFFFFFFF


class ConsoleLogger(LoggerInterface):
    """
    Simple console logger implementation.
    """

    def __init__(self, prefix: str = "UMI", verbose: bool = False):
        self._prefix = prefix
        self._verbose = verbose

    def debug(self, msg: str) -> None:
        if self._verbose:
            print(f"[{self._prefix}] DEBUG: {msg}", flush=True)

    def info(self, msg: str) -> None:
        print(f"[{self._prefix}] INFO: {msg}", flush=True)

    def warning(self, msg: str) -> None:
        print(f"[{self._prefix}] WARN: {msg}", flush=True)

    def error(self, msg: str) -> None:
        print(f"[{self._prefix}] ERROR: {msg}", flush=True)


class SilentAudioEngine(AudioEngineInterface):
    """
    Audio engine placeholder: negotiates parameters and renders silence.

    No device is opened; the sampler core is not implemented yet.
    """

    def __init__(self):
        self.sample_rate = 0.0
        self.block_size = 0
        self.channels = 0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, sample_rate: float, block_size: int, channels: int) -> bool:
        if sample_rate <= 0 or block_size <= 0:
            logger.error("Audio init error: invalid parameters sr=%s block=%s", sample_rate, block_size)
            return False
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.channels = max(1, channels)
        self._running = True
        logger.info("Audio running (silent): %.0f Hz, %d frames, %d ch",
                    self.sample_rate, self.block_size, self.channels)
        return True

    def stop(self) -> None:
        self._running = False
