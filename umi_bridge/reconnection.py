"""
Reconnecting sender for the outbound datagram link.

Wraps a DatagramSenderInterface with the bridge's bounded delivery policy:
lazy connect, one reconnect and one resend after a failure, then give up.
Worst case per message is two send attempts and one reconnect; a message
that still fails is dropped, never queued.
Once disconnect() has been called the sender stays closed (sends fail
without reconnecting) until connect() is called again.
"""

import threading

from .interfaces import DatagramSenderInterface, LoggerInterface, ConnectionState


class RetryingSender:
    """
    Owns the outbound ConnectionState and serializes every send through it.

    Thread-safe: send_with_retry() may be called concurrently from the serial
    reader thread and the heartbeat thread. The connected flag is only read
    and written while holding the send lock, so the check-connect-send
    sequence is atomic with respect to other senders.
    """

    def __init__(
        self,
        sender: DatagramSenderInterface,
        logger: LoggerInterface,
        remote_host: str,
        remote_port: int,
        local_listen_port: int = 0,
    ):
        self._sender = sender
        self._logger = logger
        self._lock = threading.Lock()
        self._state = ConnectionState(
            connected=False,
            remote_host=remote_host,
            remote_port=remote_port,
            local_listen_port=local_listen_port,
        )

        self._closed = False

        self._send_attempts = 0
        self._send_failures = 0
        self._connect_attempts = 0
        self._reconnect_count = 0

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._state.connected

    @property
    def state(self) -> ConnectionState:
        """Snapshot of the connection state."""
        with self._lock:
            return ConnectionState(
                connected=self._state.connected,
                remote_host=self._state.remote_host,
                remote_port=self._state.remote_port,
                local_listen_port=self._state.local_listen_port,
            )

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def send_attempts(self) -> int:
        return self._send_attempts

    @property
    def send_failures(self) -> int:
        return self._send_failures

    @property
    def connect_attempts(self) -> int:
        return self._connect_attempts

    @property
    def reconnect_count(self) -> int:
        """Number of successful reconnections after a send failure."""
        return self._reconnect_count

    def connect(self) -> bool:
        """Best-effort initial connect. Returns the resulting connected flag."""
        with self._lock:
            self._closed = False
            return self._ensure_connected()

    def disconnect(self) -> None:
        with self._lock:
            self._closed = True
            self._sender.disconnect()
            self._state.connected = False

    def send_with_retry(self, data: bytes) -> bool:
        """
        Send one datagram under the bounded retry policy.

        1. Connect if not connected; give up if that fails.
        2. Send; done on success.
        3. On failure mark disconnected, reconnect once, resend once.
        """
        with self._lock:
            if self._closed:
                self._send_failures += 1
                return False

            if not self._ensure_connected():
                self._send_failures += 1
                return False

            if self._attempt_send(data):
                return True

            self._state.connected = False
            self._sender.disconnect()
            self._logger.warning(
                f"Send to {self._state.remote_host}:{self._state.remote_port} failed, reconnecting"
            )

            if not self._ensure_connected():
                self._send_failures += 1
                return False

            self._reconnect_count += 1

            if self._attempt_send(data):
                return True

            self._state.connected = False
            self._sender.disconnect()
            self._send_failures += 1
            return False

    def _ensure_connected(self) -> bool:
        # Caller holds self._lock
        if self._state.connected:
            return True
        self._connect_attempts += 1
        try:
            self._state.connected = self._sender.connect(self._state.remote_host, self._state.remote_port)
        except OSError as e:
            self._logger.warning(f"Datagram connect error: {e}")
            self._state.connected = False
        if not self._state.connected:
            self._logger.debug(f"connect({self._state.remote_host}:{self._state.remote_port}) failed")
        return self._state.connected

    def _attempt_send(self, data: bytes) -> bool:
        # Caller holds self._lock
        self._send_attempts += 1
        try:
            return self._sender.send(data)
        except OSError as e:
            self._logger.warning(f"Datagram send error: {e}")
            return False
