"""Delivery of validated frames to the telemetry backend."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth

from .config import BackendConfig
from .protocol import StatusFrame

logger = logging.getLogger(__name__)

# Connections kept per host in the shared pool
POOL_SIZE = 16


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "DeliveryResult":
        return cls(ok=False, error=reason)


class DeliverySink(ABC):
    """Accepts validated frames and reports whether delivery succeeded.

    deliver() may be called from several threads at once and must report
    transport failures through the returned result instead of raising.
    """

    @abstractmethod
    def deliver(self, frame: StatusFrame) -> DeliveryResult:
        """Attempt to deliver a single frame."""

    def close(self) -> None:
        """Release any resources held by the sink."""


class NullSink(DeliverySink):
    """Dry-run sink: accepts every frame without sending it anywhere."""

    def deliver(self, frame: StatusFrame) -> DeliveryResult:
        return DeliveryResult.success()


def form_fields(frame: StatusFrame) -> dict[str, str]:
    """Form fields posted for a frame."""
    return {
        "wireless": str(frame.lqi),
        "battery": str(frame.power_voltage_millis),
        "doorsensor": str(frame.di_status),
        "status": "true" if frame.di1_status else "false",
        "changed": "true" if frame.di1_changed else "false",
    }


class HttpSink(DeliverySink):
    """Posts each frame as multipart/form-data to the configured URL."""

    def __init__(
        self,
        config: BackendConfig,
        session: requests.Session | None = None,
    ) -> None:
        if not config.url:
            raise ValueError("HttpSink requires a backend URL")

        self._config = config
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=POOL_SIZE, pool_maxsize=POOL_SIZE)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

        self._auth = None
        if config.username:
            self._auth = HTTPBasicAuth(config.username, config.password or "")

    @property
    def url(self) -> str:
        return self._config.url

    def deliver(self, frame: StatusFrame) -> DeliveryResult:
        # (None, value) makes requests encode a plain form field, not a file
        files = {name: (None, value) for name, value in form_fields(frame).items()}

        try:
            response = self._session.post(
                self._config.url,
                files=files,
                auth=self._auth,
                timeout=self._config.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            return DeliveryResult.failure(str(e))

        if not 200 <= response.status_code < 300:
            return DeliveryResult.failure(
                f"Unexpected HTTP status {response.status_code} for url: {self._config.url}"
            )

        logger.debug(
            "Delivered frame to %s: HTTP %d", self._config.url, response.status_code
        )
        return DeliveryResult.success()

    def close(self) -> None:
        self._session.close()


def create_sink(config: BackendConfig) -> DeliverySink:
    """Select the sink once, based on whether a backend URL is configured."""
    if config.dry_run:
        logger.warning("Backend is not specified, entering dry-run mode")
        return NullSink()

    logger.info("Delivering frames to %s", config.url)
    return HttpSink(config)
