"""
Serial service: reader thread, line framing and the command channel.

Subscribers register on_line and receive complete lines ("D", "*", ...).
The callback runs on the reader thread, so it must return quickly.
"""

import threading
import time
from typing import Callable, Optional

from .command_channel import CommandChannel
from .interfaces import SerialPortInterface, LoggerInterface, SerialConfig
from .line_framer import LineFramer

READ_CHUNK = 256
READ_ERROR_BACKOFF = 0.1


class SerialService:
    """
    Owns the serial port and its dedicated blocking reader thread.

    Features:
    - Blocking reads (at least one byte or the port's poll timeout)
    - CR/LF line framing with empty-line suppression
    - Single-line command writes (indicator state)
    - Joinable shutdown: disconnect() returns after the reader has exited
    """

    def __init__(self, serial_port: SerialPortInterface, logger: LoggerInterface):
        self._serial = serial_port
        self._logger = logger
        self._framer = LineFramer(on_line=self._dispatch_line)
        self._channel = CommandChannel(serial_port, logger)
        self._running = threading.Event()
        self._reader: Optional[threading.Thread] = None
        self._config: Optional[SerialConfig] = None

        self._bytes_received = 0
        self._lines_received = 0
        self._read_errors = 0

        self.on_line: Optional[Callable[[str], None]] = None

    @property
    def command_channel(self) -> CommandChannel:
        return self._channel

    @property
    def is_connected(self) -> bool:
        return self._running.is_set() and self._serial.is_open()

    @property
    def bytes_received(self) -> int:
        return self._bytes_received

    @property
    def lines_received(self) -> int:
        return self._lines_received

    @property
    def read_errors(self) -> int:
        return self._read_errors

    def connect(self, config: SerialConfig) -> bool:
        """Open the port and start the reader thread. Returns True on success."""
        self.disconnect()
        self._framer.reset()

        if not self._serial.open(config.port, config.baud, config.timeout):
            self._logger.error(f"Failed to open serial: {config.port}")
            return False

        self._config = config
        self._running.set()
        self._reader = threading.Thread(
            target=self._reader_loop,
            name="umi-serial-reader",
            daemon=True,
        )
        self._reader.start()
        self._logger.info(f"Serial open @{config.baud}: {config.port}")
        return True

    def disconnect(self) -> None:
        """Stop the reader thread, join it and close the port."""
        was_running = self._running.is_set()
        self._running.clear()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join()
        self._reader = None
        if self._serial.is_open():
            self._serial.close()
        if was_running and self._config:
            self._logger.info(f"Serial closed: {self._config.port}")

    def send_line(self, command: str) -> bool:
        """Write a single-line command (newline appended)."""
        return self._channel.send_line(command)

    def feed(self, data: bytes) -> list:
        """Push bytes through the framer as if they came from the port."""
        self._bytes_received += len(data)
        return self._framer.feed(data)

    def _reader_loop(self) -> None:
        while self._running.is_set():
            try:
                data = self._serial.read_bytes(READ_CHUNK)
            except Exception as e:
                self._read_errors += 1
                self._logger.error(f"Serial read error: {e}")
                if not self._serial.is_open():
                    break
                time.sleep(READ_ERROR_BACKOFF)
                continue
            if data:
                self.feed(data)

    def _dispatch_line(self, line: str) -> None:
        self._lines_received += 1
        callback = self.on_line
        if callback is None:
            return
        try:
            callback(line)
        except Exception as e:
            self._logger.error(f"Line handler failed for {line!r}: {e}")
