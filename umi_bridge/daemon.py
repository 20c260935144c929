#!/usr/bin/env python3
"""
UMI Bridge - Daemon

Runs the sensor/indicator bridge on the device: serial sensor lines go out
as /umi/prox, /umi/led from the control surface drives the indicator, and
/umi/hello is announced every heartbeat period.

Usage:
    python -m umi_bridge.daemon --serial-port /dev/ttyUSB0 --mac-host 10.0.0.166
    python -m umi_bridge.daemon --config /etc/umi/bridge.yaml --status-dir /var/run/umi
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import List, Optional

from .bridge import EventBridge
from .config import BridgeConfig, load_config
from .implementations import (
    RealSerialPort, UdpDatagramSender, UdpDatagramReceiver,
    RealFileSystem, RealClock, ConsoleLogger, SilentAudioEngine,
)
from .interfaces import (
    SerialPortInterface, DatagramSenderInterface, DatagramReceiverInterface,
    AudioEngineInterface, FileSystemInterface, ClockInterface, LoggerInterface,
    SerialConfig,
)
from .serial_service import SerialService
from .status_manager import StatusManager


class UmiDaemon:
    """
    Main daemon that ties all components together.

    Components:
    - SerialService: reader thread, line framing, indicator commands
    - EventBridge: OSC send/receive and heartbeat
    - AudioEngineInterface: the audio process (silent by default)
    - StatusManager: status.json when a status directory is configured

    Every collaborator can be injected; the defaults are the real ones.
    """

    def __init__(
        self,
        config: BridgeConfig,
        serial_port: Optional[SerialPortInterface] = None,
        sender: Optional[DatagramSenderInterface] = None,
        receiver: Optional[DatagramReceiverInterface] = None,
        audio: Optional[AudioEngineInterface] = None,
        filesystem: Optional[FileSystemInterface] = None,
        clock: Optional[ClockInterface] = None,
        logger: Optional[LoggerInterface] = None,
    ):
        config.validate()
        self._config = config
        self._fs = filesystem or RealFileSystem()
        self._clock = clock or RealClock()
        self._logger = logger or ConsoleLogger()
        self._audio = audio or SilentAudioEngine()
        self._shutdown = threading.Event()
        self._started = False

        self._serial = SerialService(serial_port or RealSerialPort(), self._logger)

        self._status_manager: Optional[StatusManager] = None
        if config.status_dir:
            self._status_manager = StatusManager(
                filesystem=self._fs,
                clock=self._clock,
                status_path=os.path.join(config.status_dir, "status.json"),
            )

        self._bridge = EventBridge(
            device_id=config.device_id,
            command_channel=self._serial.command_channel,
            sender=sender or UdpDatagramSender(),
            receiver=receiver or UdpDatagramReceiver(),
            clock=self._clock,
            logger=self._logger,
            heartbeat_period_ms=config.heartbeat_period_ms,
            status_manager=self._status_manager,
        )

    @property
    def bridge(self) -> EventBridge:
        return self._bridge

    @property
    def serial(self) -> SerialService:
        return self._serial

    @property
    def status_manager(self) -> Optional[StatusManager]:
        return self._status_manager

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self) -> bool:
        """
        Bring everything up. Returns False if the bridge or the audio
        engine could not start; anything already opened is closed again.
        """
        cfg = self._config
        self._logger.info(f"UMI bridge starting (device {cfg.device_id})")

        if not self._serial.connect(SerialConfig(port=cfg.serial_port, baud=cfg.baud)):
            self._logger.warning("Continuing without serial; indicator and sensor are offline")

        if not self._bridge.start(cfg.listen_port, cfg.remote_host, cfg.remote_port, cfg.listen_host):
            self._logger.error("OSC bridge failed to start")
            self._serial.disconnect()
            return False

        self._serial.on_line = self._bridge.on_serial_line

        if not self._audio.start(cfg.sample_rate, cfg.block_size, cfg.audio_channels):
            self._logger.error("Audio engine failed to start")
            self._serial.on_line = None
            self._serial.command_channel.set_led(False)
            self._bridge.stop()
            self._serial.disconnect()
            return False

        self._started = True
        self._logger.info("Running. Ctrl+C to stop.")
        return True

    def run(self, timeout: Optional[float] = None) -> None:
        """Block until request_shutdown() is called (or timeout elapses)."""
        self._shutdown.wait(timeout)

    def request_shutdown(self) -> None:
        """Wake run(). Safe to call from a signal handler."""
        self._shutdown.set()

    def stop(self) -> None:
        """Indicator off, then audio, bridge and serial down. Idempotent."""
        if not self._started:
            return
        self._started = False
        self._logger.info("Shutting down...")

        self._serial.on_line = None
        self._serial.command_channel.set_led(False)
        self._audio.stop()
        self._bridge.stop()
        self._serial.disconnect()
        self._logger.info("Bye.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="UMI Bridge - serial sensor / OSC control-plane relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m umi_bridge.daemon --serial-port /dev/ttyUSB0
  python -m umi_bridge.daemon --mac-host 192.168.1.20 --mac-in-port 9000
  python -m umi_bridge.daemon --config bridge.yaml --status-dir ./umi
        """,
    )

    parser.add_argument(
        "--config", "-c",
        metavar="PATH",
        help="YAML config file (flags override it)",
    )
    parser.add_argument(
        "--mac-host", "--mac-ip",
        dest="remote_host",
        help="Control surface host (default: 10.0.0.166)",
    )
    parser.add_argument(
        "--mac-in-port",
        dest="remote_port",
        type=int,
        help="Control surface OSC input port (default: 9000)",
    )
    parser.add_argument(
        "--device-id",
        help="Device identifier sent with every message (default: pi-01)",
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        help="Local OSC listen port (default: 9100)",
    )
    parser.add_argument(
        "--serial-port", "-p",
        help="Sensor serial port (default: /dev/ttyUSB0)",
    )
    parser.add_argument(
        "--baud", "-b",
        type=int,
        help="Baud rate (default: 115200)",
    )
    parser.add_argument(
        "--heartbeat-ms",
        dest="heartbeat_period_ms",
        type=int,
        help="Hello period in milliseconds (default: 5000)",
    )
    parser.add_argument(
        "--status-dir", "-d",
        help="Directory for status.json (disabled if unset)",
    )
    parser.add_argument(
        "--list", "-l",
        action="store_true",
        help="List available serial ports and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug messages",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> BridgeConfig:
    """Config file (if any) overlaid with the command-line flags."""
    base = load_config(args.config)
    overrides = {
        "remote_host": args.remote_host,
        "remote_port": args.remote_port,
        "device_id": args.device_id,
        "listen_port": args.listen_port,
        "serial_port": args.serial_port,
        "baud": args.baud,
        "heartbeat_period_ms": args.heartbeat_period_ms,
        "status_dir": args.status_dir,
    }
    return base.merged(overrides)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list:
        print("Available serial ports:")
        for p in RealSerialPort.list_ports():
            print(f"  {p.device}")
            print(f"    Description: {p.description}")
            print(f"    HWID: {p.hwid}")
            print()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args)
    except (ValueError, OSError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    daemon = UmiDaemon(config, logger=ConsoleLogger(verbose=args.verbose))

    # Handle signals
    def signal_handler(sig, frame):
        daemon.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not daemon.start():
        return 1
    try:
        daemon.run()
    finally:
        daemon.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
