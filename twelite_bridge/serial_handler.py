"""Serial port handler for the TWELITE parent device."""

import logging
import threading
from collections.abc import Iterator

import serial

from .config import SerialConfig
from .protocol import LineSplitter

logger = logging.getLogger(__name__)

# Reconnection settings
RECONNECT_DELAY_MIN = 1  # seconds
RECONNECT_DELAY_MAX = 60  # seconds


class SerialHandler:
    """Reads status notify lines from the serial port."""

    def __init__(self, config: SerialConfig) -> None:
        self._config = config
        self._port: serial.Serial | None = None
        self._splitter = LineSplitter()
        self._reconnect_delay = RECONNECT_DELAY_MIN
        self._stopped = threading.Event()

    @property
    def connected(self) -> bool:
        """Return True if serial port is open."""
        return self._port is not None and self._port.is_open

    def open(self) -> None:
        """Open the serial port as 8N1 without flow control."""
        self._port = serial.Serial(
            port=self._config.port,
            baudrate=self._config.baud,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
            timeout=self._config.timeout,
        )
        self._reconnect_delay = RECONNECT_DELAY_MIN  # Reset backoff on success
        logger.info(
            "Opened serial port %s at %d baud",
            self._config.port,
            self._config.baud,
        )

    def close(self) -> None:
        """Close the serial port."""
        if self._port and self._port.is_open:
            self._port.close()
            logger.info("Closed serial port")
        self._port = None

    def stop(self) -> None:
        """Make lines() return, interrupting a pending read."""
        self._stopped.set()
        if self.connected:
            self._port.cancel_read()

    def try_reconnect(self) -> bool:
        """
        Attempt to reconnect to the serial port.

        Returns True if reconnection successful, False otherwise.
        Uses exponential backoff between attempts.
        """
        self.close()
        self._splitter.reset()

        logger.info(
            "Attempting serial reconnection in %d seconds...",
            self._reconnect_delay,
        )
        if self._stopped.wait(self._reconnect_delay):
            return False

        try:
            self.open()
            return True
        except serial.SerialException as e:
            logger.warning("Serial reconnection failed: %s", e)
            # Exponential backoff
            self._reconnect_delay = min(
                self._reconnect_delay * 2,
                RECONNECT_DELAY_MAX,
            )
            return False

    def read_lines(self) -> list[bytes]:
        """
        Read and split any available lines.

        Blocks for at most the configured read timeout. Returns an empty
        list if nothing complete arrived.
        Raises SerialDisconnected if the read fails.
        """
        if not self.connected:
            return []

        try:
            data = self._port.read(self._port.in_waiting or 1)
        except (serial.SerialException, OSError) as e:
            logger.error("Serial read error: %s", e)
            raise SerialDisconnected() from e

        if not data:
            return []

        return self._splitter.feed(data)

    def lines(self) -> Iterator[bytes]:
        """Yield lines until stop() is called, reconnecting on read errors."""
        while not self._stopped.is_set():
            if not self.connected:
                if self.try_reconnect():
                    logger.info("Serial reconnected")
                continue

            try:
                yield from self.read_lines()
            except SerialDisconnected:
                logger.warning("Serial connection lost, will attempt reconnection")
                self.close()


class SerialDisconnected(Exception):
    """Raised when serial port becomes unavailable."""

    pass
