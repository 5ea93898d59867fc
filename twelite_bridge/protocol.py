"""TWELITE status notify (command 0x81) framing, decoding and validation.

Line format:
    :[48 uppercase hex digits]

- Sentinel: ':' (1 character)
- Body: 24 bytes, two hex digits each, most-significant nibble first

Byte layout:
    0       source device id
    1       command (0x81)
    2       packet id
    3       protocol version (0x01)
    4       LQI
    5-8     source hardware id, big-endian
    9       destination device id
    10-11   timestamp, big-endian, 1/64 s, wraps at 0xFFFF
    12      relay count (0-3)
    13-14   supply voltage, big-endian, mV
    16      DI status bits
    17      DI changed bits
    18-21   AI4, AI3, AI2, AI1 raw values
    22      AI correction bits, 2 per channel, AI1 in the low bits
    23      checksum (8-bit sum of all bytes is zero)
"""

import logging

logger = logging.getLogger(__name__)

SENTINEL = ord(":")
FRAME_SIZE = 24
LINE_LENGTH = 1 + FRAME_SIZE * 2

COMMAND_STATUS_NOTIFY = 0x81
PROTOCOL_VERSION = 0x01
MAX_RELAY_COUNT = 3

# Longest partial line kept between serial reads
MAX_LINE_BUFFER = 4096


class FrameError(Exception):
    """Base class for frame decode and validation errors."""

    message = "invalid frame: {value}"

    def __init__(self, value: int) -> None:
        super().__init__(value)
        self.value = value

    def __str__(self) -> str:
        return self.message.format(value=self.value)

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self), self.value))


class DecodeError(FrameError):
    """Raised when a line cannot be decoded into a frame."""


class InvalidLength(DecodeError):
    message = "Unexpected length: {value}"

    @property
    def length(self) -> int:
        return self.value


class InvalidCharacter(DecodeError):
    message = "Hit invalid character {value:#04x} when decoding"

    @property
    def char(self) -> int:
        return self.value


class ValidateError(FrameError):
    """Raised when a decoded frame fails a structural check."""


class InvalidChecksum(ValidateError):
    message = "Checksum must sum to 0, actually {value:#04x}"

    @property
    def checksum(self) -> int:
        return self.value


class InvalidProtocolVersion(ValidateError):
    message = "Protocol version is always 0x01, but actually {value:#04x}"

    @property
    def version(self) -> int:
        return self.value


class InvalidCommand(ValidateError):
    message = "Command is always 0x81, but actually {value:#04x}"

    @property
    def command(self) -> int:
        return self.value


class InvalidRelayCount(ValidateError):
    message = "Relay count must be less than or equal to 3, but actually {value}"

    @property
    def count(self) -> int:
        return self.value


def checksum(data: bytes) -> int:
    """Return the byte that makes the 8-bit sum of data plus itself zero."""
    return -sum(data) & 0xFF


def _nibble(c: int) -> int:
    if 0x30 <= c <= 0x39:  # 0-9
        return c - 0x30
    if 0x41 <= c <= 0x46:  # A-F
        return c - 0x41 + 10
    raise InvalidCharacter(c)


class StatusFrame:
    """Immutable view over a decoded 24-byte status notify frame.

    Decoding does not validate the frame; call validate() before trusting
    the field values.
    """

    __slots__ = ("_buf",)

    def __init__(self, buf: bytes) -> None:
        if len(buf) != FRAME_SIZE:
            raise InvalidLength(len(buf))
        object.__setattr__(self, "_buf", bytes(buf))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @classmethod
    def decode(cls, line: bytes | str) -> "StatusFrame":
        """Decode a line (without terminator) into a frame.

        Raises InvalidLength or InvalidCharacter; stops at the first bad digit.
        str input is checked as its UTF-8 bytes.
        """
        if isinstance(line, str):
            line = line.encode("utf-8")

        if len(line) != LINE_LENGTH:
            raise InvalidLength(len(line))

        if line[0] != SENTINEL:
            raise InvalidCharacter(line[0])

        out = bytearray(FRAME_SIZE)
        for n in range(FRAME_SIZE):
            high = _nibble(line[1 + n * 2])
            low = _nibble(line[2 + n * 2])
            out[n] = (high << 4) | low

        return cls(bytes(out))

    def as_bytes(self) -> bytes:
        """Return the raw 24 bytes."""
        return self._buf

    def to_line(self) -> str:
        """Encode back to the ':'-prefixed wire form."""
        return ":" + self._buf.hex().upper()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatusFrame):
            return NotImplemented
        return self._buf == other._buf

    def __hash__(self) -> int:
        return hash(self._buf)

    def __repr__(self) -> str:
        return f"StatusFrame({self.to_line()!r})"

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    @property
    def source_device_id(self) -> int:
        return self._buf[0]

    @property
    def command(self) -> int:
        return self._buf[1]

    @property
    def packet_id(self) -> int:
        return self._buf[2]

    @property
    def protocol_version(self) -> int:
        return self._buf[3]

    @property
    def lqi(self) -> int:
        """Link quality indicator, 0-255. See lqi_dbm."""
        return self._buf[4]

    @property
    def hardware_id(self) -> int:
        return int.from_bytes(self._buf[5:9], "big")

    @property
    def dest_device_id(self) -> int:
        return self._buf[9]

    @property
    def timestamp(self) -> int:
        """Counts up in 1/64 s and wraps to 0 after 0xFFFF."""
        return int.from_bytes(self._buf[10:12], "big")

    @property
    def relay_count(self) -> int:
        return self._buf[12]

    @property
    def power_voltage_millis(self) -> int:
        return int.from_bytes(self._buf[13:15], "big")

    @property
    def di_status(self) -> int:
        """DI1 (0x1), DI2 (0x2), DI3 (0x4), DI4 (0x8)."""
        return self._buf[16]

    @property
    def di_changed(self) -> int:
        return self._buf[17]

    @property
    def ad4_value(self) -> int:
        """Input voltage (0-2000 mV) divided by 16. See ad_voltage_millis."""
        return self._buf[18]

    @property
    def ad3_value(self) -> int:
        return self._buf[19]

    @property
    def ad2_value(self) -> int:
        return self._buf[20]

    @property
    def ad1_value(self) -> int:
        return self._buf[21]

    @property
    def ad_value(self) -> tuple[int, int, int, int]:
        """Raw AI values, channel 1 first."""
        return (self.ad1_value, self.ad2_value, self.ad3_value, self.ad4_value)

    @property
    def ad_fix(self) -> int:
        """AI correction bits, two per channel, AI1 in the least significant."""
        return self._buf[22]

    @property
    def checksum(self) -> int:
        return self._buf[23]

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def lqi_dbm(self) -> float:
        """Approximate received power: (7 * LQI - 1970) / 20."""
        return (7 * self.lqi - 1970) / 20

    @property
    def timestamp_seconds(self) -> float:
        return self.timestamp / 64

    def di_status_bit(self, n: int) -> bool:
        """Status of digital input n (1-4)."""
        return bool(self.di_status & (1 << _channel_index(n)))

    def di_changed_bit(self, n: int) -> bool:
        """Whether digital input n (1-4) changed."""
        return bool(self.di_changed & (1 << _channel_index(n)))

    @property
    def di1_status(self) -> bool:
        return self.di_status_bit(1)

    @property
    def di2_status(self) -> bool:
        return self.di_status_bit(2)

    @property
    def di3_status(self) -> bool:
        return self.di_status_bit(3)

    @property
    def di4_status(self) -> bool:
        return self.di_status_bit(4)

    @property
    def di1_changed(self) -> bool:
        return self.di_changed_bit(1)

    @property
    def di2_changed(self) -> bool:
        return self.di_changed_bit(2)

    @property
    def di3_changed(self) -> bool:
        return self.di_changed_bit(3)

    @property
    def di4_changed(self) -> bool:
        return self.di_changed_bit(4)

    def ad_fix_bits(self, k: int) -> int:
        """Correction bits of analog channel k (1-4)."""
        return (self.ad_fix >> (2 * _channel_index(k))) & 0b11

    def ad_voltage_millis(self, k: int) -> int:
        """Analog channel k (1-4) in mV: (value * 4 + correction) * 4."""
        value = self.ad_value[_channel_index(k)]
        return (value * 4 + self.ad_fix_bits(k)) * 4

    @property
    def ad1_voltage_millis(self) -> int:
        return self.ad_voltage_millis(1)

    @property
    def ad2_voltage_millis(self) -> int:
        return self.ad_voltage_millis(2)

    @property
    def ad3_voltage_millis(self) -> int:
        return self.ad_voltage_millis(3)

    @property
    def ad4_voltage_millis(self) -> int:
        return self.ad_voltage_millis(4)

    def summary(self) -> str:
        """One-line human readable summary."""
        return (
            f"{self.lqi_dbm:.2f}dBm {self.power_voltage_millis}mV "
            f"is_open: {_flag(self.di1_status)} "
            f"changed: {_flag(self.di1_changed)}"
        )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_checksum(self) -> None:
        """Raise InvalidChecksum with the wrapped sum unless it is zero."""
        total = sum(self._buf) & 0xFF
        if total != 0:
            raise InvalidChecksum(total)

    def validate_protocol_version(self) -> None:
        if self.protocol_version != PROTOCOL_VERSION:
            raise InvalidProtocolVersion(self.protocol_version)

    def validate_command(self) -> None:
        if self.command != COMMAND_STATUS_NOTIFY:
            raise InvalidCommand(self.command)

    def validate_relay_count(self) -> None:
        if self.relay_count > MAX_RELAY_COUNT:
            raise InvalidRelayCount(self.relay_count)

    def validate(self) -> None:
        """Run all checks in order, raising the first failure."""
        self.validate_checksum()
        self.validate_protocol_version()
        self.validate_command()
        self.validate_relay_count()


def _channel_index(n: int) -> int:
    if not 1 <= n <= 4:
        raise ValueError(f"channel must be 1-4, got {n}")
    return n - 1


def _flag(value: bool) -> str:
    return "true" if value else "false"


class LineSplitter:
    """Stateful splitter for extracting lines from a byte stream."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def reset(self) -> None:
        """Discard any partial line."""
        self._buffer.clear()

    def feed(self, data: bytes) -> list[bytes]:
        """Feed bytes into the splitter, return list of complete lines."""
        self._buffer.extend(data)
        lines = []

        while True:
            try:
                end = self._buffer.index(b"\n")
            except ValueError:
                break

            line = bytes(self._buffer[:end]).rstrip(b"\r")
            del self._buffer[: end + 1]

            if line:
                lines.append(line)

        if len(self._buffer) > MAX_LINE_BUFFER:
            logger.warning(
                "Discarding %d bytes without line terminator", len(self._buffer)
            )
            self._buffer.clear()

        return lines
