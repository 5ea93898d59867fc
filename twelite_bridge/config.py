"""Configuration loading and validation.

Values are layered, later sources winning:
defaults < YAML file < environment variables < command-line overrides.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml

# Environment variable -> (section, key)
ENV_VARS = {
    "SERIAL_PORT": ("serial", "port"),
    "BAUDRATE": ("serial", "baud"),
    "URL": ("backend", "url"),
    "USERNAME": ("backend", "username"),
    "PASSWORD": ("backend", "password"),
}


@dataclass(frozen=True)
class SerialConfig:
    port: str
    baud: int = 115200
    timeout: float = 10.0  # seconds


@dataclass(frozen=True)
class BackendConfig:
    url: str | None = None
    username: str | None = None
    password: str | None = None
    timeout: float = 30.0  # seconds

    @property
    def dry_run(self) -> bool:
        """True when no backend is configured."""
        return not self.url


@dataclass(frozen=True)
class Config:
    serial: SerialConfig
    backend: BackendConfig = field(default_factory=BackendConfig)


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Mapping[str, object]] | None = None,
) -> Config:
    """Load and validate configuration.

    path is optional; a missing file raises FileNotFoundError.
    overrides has the same shape as the YAML file, e.g.
    {"serial": {"port": "/dev/ttyUSB0"}}. None values are ignored.
    """
    env = os.environ if env is None else env
    raw: dict[str, dict[str, object]] = {"serial": {}, "backend": {}}

    if path is not None:
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError("configuration validation failed: expected a mapping")
        for section in raw:
            raw[section].update(loaded.get(section) or {})

    for name, (section, key) in ENV_VARS.items():
        value = env.get(name)
        if value:
            raw[section][key] = value

    for section, values in (overrides or {}).items():
        for key, value in values.items():
            if value is not None:
                raw.setdefault(section, {})[key] = value

    errors = []

    serial_raw = raw["serial"]
    if not serial_raw.get("port"):
        errors.append("serial.port is required")

    baud = serial_raw.get("baud", 115200)
    try:
        baud = int(baud)
    except (TypeError, ValueError):
        errors.append(f"serial.baud must be an integer, got {baud!r}")
    else:
        if baud <= 0:
            errors.append(f"serial.baud must be positive, got {baud}")

    backend_raw = raw["backend"]
    url = backend_raw.get("url") or None
    if url is not None:
        scheme = urlparse(str(url)).scheme
        if scheme not in ("http", "https"):
            errors.append(f"backend.url must be an http(s) URL, got {url!r}")

    if errors:
        raise ValueError(f"configuration validation failed: {'; '.join(errors)}")

    serial = SerialConfig(
        port=str(serial_raw["port"]),
        baud=baud,
        timeout=float(serial_raw.get("timeout", 10.0)),
    )

    backend = BackendConfig(
        url=url,
        username=backend_raw.get("username") or None,
        password=backend_raw.get("password"),
        timeout=float(backend_raw.get("timeout", 30.0)),
    )

    return Config(serial=serial, backend=backend)
