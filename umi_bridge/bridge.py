"""
Event bridge between the serial sensor and the OSC control-plane peer.

Owns the inbound listener and the outbound sender:
- serial lines "D" / "*" become /umi/prox events (other lines are ignored)
- a heartbeat thread announces /umi/hello every period
- inbound datagrams are decoded and dispatched; bundles are walked
  depth-first in order; /umi/led drives the command channel

Threading:
- on_serial_line() runs on the serial reader thread
- the heartbeat runs on its own joinable thread
- inbound dispatch runs on the receiver's thread
All outbound traffic funnels through RetryingSender, which serializes the
connect/send/reconnect sequence under one lock.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

from .command_channel import CommandChannel
from .interfaces import (
    BridgeState,
    ConnectionState,
    DatagramReceiverInterface,
    DatagramSenderInterface,
    ClockInterface,
    LoggerInterface,
)
from .models import CommandMessage, HelloAnnouncement, SensorEvent
from .osc_codec import (
    CodecError,
    HELLO_ADDRESS,
    LED_ADDRESS,
    PROX_ADDRESS,
    decode_datagram,
    encode_hello,
    encode_sensor_event,
    led_state,
    walk,
)
from .reconnection import RetryingSender
from .status_manager import StatusManager

DEFAULT_HEARTBEAT_PERIOD_MS = 5000

DETECTED_LINE = "D"
CLEARED_LINE = "*"

_UINT32_MASK = 0xFFFFFFFF


def classify_line(line: str) -> Optional[bool]:
    """Map a framed serial line to a detection state, or None if unrecognized."""
    if line == DETECTED_LINE:
        return True
    if line == CLEARED_LINE:
        return False
    return None


class _SafeLogger(LoggerInterface):
    """Forwards to another logger; a failing logger never reaches the caller."""

    def __init__(self, inner: LoggerInterface):
        self._inner = inner

    def _emit(self, level: str, msg: str) -> None:
        try:
            getattr(self._inner, level)(msg)
        except Exception:
            pass

    def debug(self, msg: str) -> None:
        self._emit("debug", msg)

    def info(self, msg: str) -> None:
        self._emit("info", msg)

    def warning(self, msg: str) -> None:
        self._emit("warning", msg)

    def error(self, msg: str) -> None:
        self._emit("error", msg)


class EventBridge:
    """
    Relays sensor transitions upstream and applies remote commands locally.

    State machine: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.
    Serial events and inbound datagrams are only acted on while RUNNING;
    anything arriving in another state is dropped (and counted).

    Usage:
        bridge = EventBridge(device_id="pi-01", command_channel=channel,
                             sender=UdpDatagramSender(),
                             receiver=UdpDatagramReceiver(),
                             clock=RealClock(), logger=ConsoleLogger())
        if bridge.start(9100, "10.0.0.166", 9000):
            serial_service.on_line = bridge.on_serial_line
        ...
        bridge.stop()
    """

    def __init__(
        self,
        device_id: str,
        command_channel: CommandChannel,
        sender: DatagramSenderInterface,
        receiver: DatagramReceiverInterface,
        clock: ClockInterface,
        logger: LoggerInterface,
        heartbeat_period_ms: int = DEFAULT_HEARTBEAT_PERIOD_MS,
        status_manager: Optional[StatusManager] = None,
    ):
        if heartbeat_period_ms <= 0:
            raise ValueError("heartbeat_period_ms must be positive")

        self._device_id = device_id
        self._commands = command_channel
        self._sender = sender
        self._receiver = receiver
        self._clock = clock
        self._logger = _SafeLogger(logger)
        self._heartbeat_period = heartbeat_period_ms / 1000.0
        self._status = status_manager

        self._lifecycle_lock = threading.Lock()
        self._state = BridgeState.STOPPED
        self._running = threading.Event()
        self._stop_heartbeat = threading.Event()
        self._heartbeat_thread: Optional[threading.Thread] = None
        self._link: Optional[RetryingSender] = None
        self._listen_port = 0

        # Counters are per instance and guarded by _counter_lock
        self._counter_lock = threading.Lock()
        self._sequence = 0
        self._hello_sequence = 0
        self._stats = {
            "events_sent": 0,
            "events_dropped": 0,
            "hellos_sent": 0,
            "hellos_failed": 0,
            "lines_ignored": 0,
            "datagrams_received": 0,
            "datagrams_malformed": 0,
            "messages_dispatched": 0,
            "addresses_ignored": 0,
            "led_commands": 0,
            "calls_dropped": 0,
        }

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def sequence(self) -> int:
        """Last SensorEvent sequence assigned (0 before the first event)."""
        with self._counter_lock:
            return self._sequence

    @property
    def hello_sequence(self) -> int:
        """Last HelloAnnouncement sequence assigned."""
        with self._counter_lock:
            return self._hello_sequence

    @property
    def connection(self) -> ConnectionState:
        link = self._link
        if link is None:
            return ConnectionState(local_listen_port=self._listen_port)
        return link.state

    def stats(self) -> dict[str, int]:
        with self._counter_lock:
            return dict(self._stats)

    def snapshot(self) -> dict[str, Any]:
        """Status document for the diagnostic sink."""
        conn = self.connection
        link = self._link
        return {
            "device_id": self._device_id,
            "state": self._state.value,
            "connection": {
                "connected": conn.connected,
                "remote_host": conn.remote_host,
                "remote_port": conn.remote_port,
                "listen_port": conn.local_listen_port,
                "reconnects": link.reconnect_count if link else 0,
                "send_attempts": link.send_attempts if link else 0,
            },
            "sequence": self.sequence,
            "hello_sequence": self.hello_sequence,
            "counters": self.stats(),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, listen_port: int, remote_host: str, remote_port: int, listen_host: str = "0.0.0.0") -> bool:
        """
        Bind the listener, connect the sender and launch the heartbeat.

        Returns False (and stays STOPPED) if the listen port cannot be bound
        or the bridge is not currently stopped. A failed initial connect is
        not fatal; it is retried lazily on the first send.
        """
        with self._lifecycle_lock:
            if self._state != BridgeState.STOPPED:
                self._logger.warning(f"start() ignored, bridge is {self._state.value}")
                return False

            self._set_state(BridgeState.STARTING)

            if not self._receiver.bind(listen_port, listen_host):
                self._logger.error(f"Couldn't bind OSC receiver on UDP {listen_port}")
                self._set_state(BridgeState.STOPPED)
                return False
            self._listen_port = listen_port
            self._logger.info(f"OSC RX listening on UDP {listen_port}")

            self._link = RetryingSender(
                sender=self._sender,
                logger=self._logger,
                remote_host=remote_host,
                remote_port=remote_port,
                local_listen_port=listen_port,
            )
            if self._link.connect():
                self._logger.info(f"OSC TX connected to {remote_host}:{remote_port}")
            else:
                self._logger.warning(f"Initial connect({remote_host}:{remote_port}) failed")

            self._receiver.set_handler(self.on_datagram)

            self._stop_heartbeat.clear()
            self._running.set()
            self._set_state(BridgeState.RUNNING)
            if self._status:
                self._status.start_session()
            self._publish_status()

            self._heartbeat_thread = threading.Thread(
                target=self._heartbeat_loop,
                name="umi-heartbeat",
                daemon=True,
            )
            self._heartbeat_thread.start()
            return True

    def stop(self) -> None:
        """
        Stop the heartbeat, tear down receive and send sides.

        Blocks until the heartbeat thread (and the receiver's thread) have
        exited. Idempotent.
        """
        with self._lifecycle_lock:
            if self._state == BridgeState.STOPPED:
                return

            self._set_state(BridgeState.STOPPING)
            self._running.clear()
            self._stop_heartbeat.set()

            thread = self._heartbeat_thread
            if thread is not None and thread is not threading.current_thread():
                thread.join()
            self._heartbeat_thread = None

            self._receiver.set_handler(None)
            self._receiver.close()

            if self._link is not None:
                self._link.disconnect()

            self._set_state(BridgeState.STOPPED)
            self._publish_status()
            self._logger.info("Bridge stopped")

    # ------------------------------------------------------------------
    # Serial -> network
    # ------------------------------------------------------------------

    def on_serial_line(self, line: str) -> bool:
        """
        Line callback for the serial service (runs on the reader thread).

        Returns True if a /umi/prox event was sent.
        """
        detected = classify_line(line)
        if detected is None:
            with self._counter_lock:
                self._stats["lines_ignored"] += 1
            self._logger.debug(f"Ignoring serial line {line!r}")
            return False
        return self.on_serial_event(detected)

    def on_serial_event(self, detected: bool) -> bool:
        """Forward one detection transition upstream. Returns True if sent."""
        if not self._running.is_set():
            self._count_dropped_call()
            return False

        timestamp_ms = self._clock.monotonic_ms()
        with self._counter_lock:
            self._sequence = (self._sequence + 1) & _UINT32_MASK
            seq = self._sequence

        event = SensorEvent(
            device_id=self._device_id,
            sequence=seq,
            detected=detected,
            timestamp_ms=timestamp_ms,
        )
        return self._send_event(event)

    def _send_event(self, event: SensorEvent) -> bool:
        ok = self._send(encode_sensor_event(event))
        with self._counter_lock:
            self._stats["events_sent" if ok else "events_dropped"] += 1
        if ok:
            self._logger.info(
                f"TX {PROX_ADDRESS} id={event.device_id} det={int(event.detected)} "
                f"seq={event.sequence} ts={event.timestamp_ms}"
            )
        else:
            self._logger.warning(f"send({PROX_ADDRESS}) failed (seq={event.sequence})")
        return ok

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def send_hello(self) -> bool:
        """Build and send one /umi/hello announcement. Returns True if sent."""
        with self._counter_lock:
            self._hello_sequence = (self._hello_sequence + 1) & _UINT32_MASK
            hello_seq = self._hello_sequence

        hello = HelloAnnouncement(
            device_id=self._device_id,
            listen_port=self._listen_port,
            hello_sequence=hello_seq,
        )
        ok = self._send(encode_hello(hello))
        with self._counter_lock:
            self._stats["hellos_sent" if ok else "hellos_failed"] += 1
        if ok:
            self._logger.info(f"TX {HELLO_ADDRESS} id={hello.device_id} seq={hello_seq}")
        else:
            self._logger.warning(f"send({HELLO_ADDRESS}) failed")
        return ok

    def _heartbeat_loop(self) -> None:
        while self._running.is_set():
            self.send_hello()
            self._publish_status()
            if self._stop_heartbeat.wait(self._heartbeat_period):
                break

    # ------------------------------------------------------------------
    # Network -> serial
    # ------------------------------------------------------------------

    def on_datagram(self, data: bytes) -> int:
        """
        Receive-thread handler: decode and dispatch one datagram.

        Returns the number of messages dispatched (0 for a dropped or
        malformed datagram).
        """
        if not self._running.is_set():
            self._count_dropped_call()
            return 0

        with self._counter_lock:
            self._stats["datagrams_received"] += 1

        try:
            packet = decode_datagram(data)
            return walk(packet, self.handle_message)
        except CodecError as e:
            with self._counter_lock:
                self._stats["datagrams_malformed"] += 1
            self._logger.warning(f"Discarding malformed datagram ({len(data)}B): {e}")
            return 0

    def handle_message(self, message: CommandMessage) -> None:
        """Dispatch one decoded message."""
        with self._counter_lock:
            self._stats["messages_dispatched"] += 1
        self._logger.info(f"RX {message.describe()}")

        if message.address == LED_ADDRESS:
            on = led_state(message)
            if on is None:
                self._logger.warning(f"{LED_ADDRESS} without argument ignored")
                return
            with self._counter_lock:
                self._stats["led_commands"] += 1
            if not self._commands.set_led(on):
                self._logger.warning(f"Indicator write failed ({'on' if on else 'off'})")
            return

        with self._counter_lock:
            self._stats["addresses_ignored"] += 1
        self._logger.debug(f"No handler for {message.address}, ignored")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _send(self, data: bytes) -> bool:
        link = self._link
        if link is None:
            return False
        return link.send_with_retry(data)

    def _count_dropped_call(self) -> None:
        with self._counter_lock:
            self._stats["calls_dropped"] += 1

    def _set_state(self, state: BridgeState) -> None:
        old = self._state
        self._state = state
        self._logger.info(f"Bridge state: {old.value} -> {state.value}")

    def _publish_status(self) -> None:
        if self._status is None:
            return
        try:
            self._status.update(self.snapshot())
        except Exception as e:
            self._logger.warning(f"Status update failed: {e}")
