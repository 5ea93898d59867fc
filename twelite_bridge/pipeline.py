"""Per-line ingestion: decode, validate, summarize and dispatch."""

import logging
import threading
from collections.abc import Iterable

from .delivery import DeliverySink
from .protocol import DecodeError, StatusFrame, ValidateError

logger = logging.getLogger(__name__)


class Pipeline:
    """Drives each received line through the decoder, validator and sink.

    handle_line() is called from a single reader thread. Delivery runs on
    its own daemon thread per frame, so a slow backend never holds up the
    reader and in-flight deliveries are abandoned when the process exits.
    """

    def __init__(self, sink: DeliverySink) -> None:
        self._sink = sink
        self._frames_accepted = 0
        self._decode_errors = 0
        self._validate_errors = 0

    @property
    def sink(self) -> DeliverySink:
        return self._sink

    @property
    def frames_accepted(self) -> int:
        return self._frames_accepted

    @property
    def decode_errors(self) -> int:
        return self._decode_errors

    @property
    def validate_errors(self) -> int:
        return self._validate_errors

    def run(self, lines: Iterable[bytes | str]) -> None:
        """Process lines until the iterable is exhausted."""
        for line in lines:
            self.handle_line(line)

    def handle_line(self, line: bytes | str) -> StatusFrame | None:
        """
        Process one line.

        Returns the accepted frame, or None if the line was discarded.
        """
        try:
            frame = StatusFrame.decode(line)
        except DecodeError as e:
            self._decode_errors += 1
            logger.warning("%s", e)
            logger.warning("Buffer: %r", line)
            return None

        try:
            frame.validate()
        except ValidateError as e:
            self._validate_errors += 1
            logger.warning("%s (frame %s)", e, frame.to_line())
            return None

        self._frames_accepted += 1
        logger.info(
            "Device %#04x packet %#04x: %s",
            frame.source_device_id,
            frame.packet_id,
            frame.summary(),
        )

        self.dispatch(frame)
        return frame

    def dispatch(self, frame: StatusFrame) -> threading.Thread:
        """Start delivery of a frame without waiting for it."""
        thread = threading.Thread(
            target=self._deliver,
            args=(frame,),
            name=f"deliver-{frame.packet_id:02x}",
            daemon=True,
        )
        thread.start()
        return thread

    def _deliver(self, frame: StatusFrame) -> None:
        try:
            result = self._sink.deliver(frame)
        except Exception:
            logger.exception("Delivery of packet %#04x raised", frame.packet_id)
            return

        if result.ok:
            logger.debug("Delivered packet %#04x", frame.packet_id)
        else:
            logger.warning(
                "Delivery of packet %#04x failed: %s", frame.packet_id, result.error
            )
