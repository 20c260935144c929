"""
Command channel: single-line text commands back to the serial device.

Used for indicator state ("C5" = on, "C0" = off). The device keeps the
last commanded state until told otherwise.
"""

from typing import Optional

from .interfaces import SerialPortInterface, LoggerInterface

LINE_TERMINATOR = "\n"

LED_ON_COMMAND = "C5"
LED_OFF_COMMAND = "C0"


class CommandChannel:
    """
    Writes one command per line to the serial sink.

    Best-effort: a failed write is reported as False and never retried here.
    """

    def __init__(self, serial_port: SerialPortInterface, logger: Optional[LoggerInterface] = None):
        self._serial = serial_port
        self._logger = logger
        self._commands_sent = 0
        self._write_failures = 0

    @property
    def commands_sent(self) -> int:
        return self._commands_sent

    @property
    def write_failures(self) -> int:
        return self._write_failures

    def send_line(self, command: str) -> bool:
        """Write ``command`` followed by a newline. Returns True on a full write."""
        payload = (command + LINE_TERMINATOR).encode("utf-8")
        try:
            written = self._serial.write(payload)
        except Exception as e:
            written = 0
            if self._logger:
                self._logger.error(f"Serial write error: {e}")

        if written == len(payload):
            self._commands_sent += 1
            if self._logger:
                self._logger.debug(f"[CMD TX] >>> {command}")
            return True

        self._write_failures += 1
        if self._logger:
            self._logger.warning(f"Serial write failed for command {command!r} ({written}/{len(payload)} bytes)")
        return False

    def set_led(self, on: bool) -> bool:
        """Persist the indicator state on the device."""
        return self.send_line(LED_ON_COMMAND if on else LED_OFF_COMMAND)
