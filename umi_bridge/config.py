"""
Bridge configuration.

Defaults match the stock deployment (Pi at 9100, Mac control surface at
10.0.0.166:9000). A YAML file can override any field; command-line flags
override the file.

Example config.yaml:
    device_id: pi-02
    remote_host: 192.168.1.20
    heartbeat_period_ms: 2000
    status_dir: /var/run/umi
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml


@dataclass
class BridgeConfig:
    device_id: str = "pi-01"
    listen_port: int = 9100
    remote_host: str = "10.0.0.166"
    remote_port: int = 9000
    heartbeat_period_ms: int = 5000
    serial_port: str = "/dev/ttyUSB0"
    baud: int = 115200
    listen_host: str = "0.0.0.0"
    status_dir: Optional[str] = None
    sample_rate: float = 48000.0
    block_size: int = 256
    audio_channels: int = 2

    def validate(self) -> None:
        """Raise ValueError if any field is out of range."""
        if not isinstance(self.device_id, str) or not self.device_id:
            raise ValueError("device_id must be a non-empty string")
        if not isinstance(self.remote_host, str) or not self.remote_host:
            raise ValueError("remote_host must be a non-empty string")
        for name in ("listen_port", "remote_port"):
            value = getattr(self, name)
            if not _is_int(value) or not 1 <= value <= 65535:
                raise ValueError(f"{name} must be in 1..65535, got {value!r}")
        if not _is_int(self.heartbeat_period_ms) or self.heartbeat_period_ms <= 0:
            raise ValueError(f"heartbeat_period_ms must be positive, got {self.heartbeat_period_ms!r}")
        if not _is_int(self.baud) or self.baud <= 0:
            raise ValueError(f"baud must be positive, got {self.baud!r}")
        if not isinstance(self.sample_rate, (int, float)) or self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate!r}")
        if not _is_int(self.block_size) or self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size!r}")
        if not _is_int(self.audio_channels) or self.audio_channels <= 0:
            raise ValueError(f"audio_channels must be positive, got {self.audio_channels!r}")

    def merged(self, overrides: Dict[str, Any]) -> "BridgeConfig":
        """Return a copy with the non-None overrides applied, then validated."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
        cfg = replace(self, **{k: v for k, v in overrides.items() if v is not None})
        cfg.validate()
        return cfg


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def load_config(path: Optional[str] = None) -> BridgeConfig:
    """
    Load a BridgeConfig from a YAML file.

    With no path the defaults are returned. An empty file is treated as an
    empty mapping.

    Raises:
        ValueError: document is not a mapping, has unknown keys or invalid values
        OSError: file cannot be read
    """
    base = BridgeConfig()
    if not path:
        base.validate()
        return base

    with open(path, "r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")

    return base.merged(data)
