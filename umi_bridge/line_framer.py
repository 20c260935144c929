"""
Line framing for the serial byte stream.

Sits between raw serial bytes (from the reader thread) and the line
callback. Splits on CR or LF, trims surrounding whitespace and drops empty
lines, so CR, LF and CRLF terminated input all frame identically.

feed() only touches the buffer and invokes the callback; it never blocks
and never performs I/O. The callback runs on the caller's thread.
"""

from __future__ import annotations

from typing import Callable, Optional

_DELIMITERS = (0x0D, 0x0A)  # CR, LF


class LineFramer:
    """Accumulate bytes and emit complete, trimmed, non-empty text lines."""

    def __init__(
        self,
        on_line: Optional[Callable[[str], None]] = None,
        encoding: str = "utf-8",
    ):
        self.on_line = on_line
        self._encoding = encoding
        self._buf = bytearray()

    @property
    def pending(self) -> bytes:
        """Unterminated fragment carried over to the next feed()."""
        return bytes(self._buf)

    def feed(self, data: bytes) -> list[str]:
        """Append a chunk and emit every line completed by it.

        Returns the emitted lines in order (the callback, if set, has
        already been invoked for each of them).
        """
        lines: list[str] = []
        for byte in data:
            if byte in _DELIMITERS:
                if self._buf:
                    line = self._buf.decode(self._encoding, errors="replace").strip()
                    self._buf.clear()
                    if line:
                        lines.append(line)
                        if self.on_line is not None:
                            self.on_line(line)
            else:
                self._buf.append(byte)
        return lines

    def reset(self) -> None:
        """Discard the unterminated fragment without emitting it."""
        self._buf.clear()
