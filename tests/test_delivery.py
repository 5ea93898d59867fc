"""
Unit tests for delivery sinks.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
import requests
from requests.auth import HTTPBasicAuth

from twelite_bridge.config import BackendConfig
from twelite_bridge.delivery import (
    DeliveryResult,
    HttpSink,
    NullSink,
    create_sink,
    form_fields,
)
from twelite_bridge.protocol import StatusFrame

URL = "http://backend.local/api/door"


def make_session(status_code=200, error=None):
    session = MagicMock(spec=requests.Session)
    response = MagicMock(status_code=status_code)
    if error is not None:
        response.raise_for_status.side_effect = error
    session.post.return_value = response
    return session


@pytest.fixture
def frame(sample_line) -> StatusFrame:
    return StatusFrame.decode(sample_line)


class TestNullSink:
    def test_always_succeeds(self, frame):
        """The dry-run sink never touches the network."""
        with patch("requests.Session.request") as request:
            result = NullSink().deliver(frame)

        assert result == DeliveryResult.success()
        assert result.ok
        request.assert_not_called()


class TestHttpSink:
    """Tests for the multipart POST sink."""

    def test_posts_form_fields(self, frame):
        session = make_session()
        sink = HttpSink(BackendConfig(url=URL), session=session)

        result = sink.deliver(frame)

        assert result.ok
        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args == (URL,)
        assert kwargs["files"] == {
            "wireless": (None, "117"),
            "battery": (None, "3076"),
            "doorsensor": (None, "0"),
            "status": (None, "false"),
            "changed": (None, "false"),
        }
        assert kwargs["auth"] is None
        assert kwargs["timeout"] == 30.0

    def test_body_is_multipart(self, frame):
        """The captured arguments encode as multipart/form-data."""
        session = make_session()
        HttpSink(BackendConfig(url=URL), session=session).deliver(frame)
        kwargs = session.post.call_args.kwargs

        prepared = requests.Request("POST", URL, files=kwargs["files"]).prepare()

        assert prepared.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="wireless"\r\n\r\n117\r\n' in prepared.body
        assert b'name="changed"\r\n\r\nfalse\r\n' in prepared.body

    def test_digital_input_fields(self, sample_body):
        from conftest import build_line

        sample_body[16] = 0b1001
        sample_body[17] = 0b0001
        frame = StatusFrame.decode(build_line(bytes(sample_body)))

        assert form_fields(frame) == {
            "wireless": "117",
            "battery": "3076",
            "doorsensor": "9",
            "status": "true",
            "changed": "true",
        }

    def test_basic_auth(self, frame):
        session = make_session()
        config = BackendConfig(url=URL, username="sensor", password="secret")

        HttpSink(config, session=session).deliver(frame)

        assert session.post.call_args.kwargs["auth"] == HTTPBasicAuth("sensor", "secret")

    def test_basic_auth_without_password(self, frame):
        session = make_session()
        HttpSink(BackendConfig(url=URL, username="sensor"), session=session).deliver(frame)

        assert session.post.call_args.kwargs["auth"] == HTTPBasicAuth("sensor", "")

    def test_http_error_status(self, frame):
        session = make_session(500, requests.HTTPError("500 Server Error"))
        result = HttpSink(BackendConfig(url=URL), session=session).deliver(frame)

        assert not result.ok
        assert "500" in result.error

    def test_auth_rejected(self, frame):
        session = make_session(401, requests.HTTPError("401 Client Error: Unauthorized"))
        result = HttpSink(BackendConfig(url=URL), session=session).deliver(frame)

        assert result == DeliveryResult.failure("401 Client Error: Unauthorized")

    def test_non_2xx_without_raise(self, frame):
        """Statuses raise_for_status lets through still count as failures."""
        session = make_session(304)
        result = HttpSink(BackendConfig(url=URL), session=session).deliver(frame)

        assert not result.ok
        assert "304" in result.error

    def test_connection_error(self, frame):
        session = make_session()
        session.post.side_effect = requests.ConnectionError("connection refused")

        result = HttpSink(BackendConfig(url=URL), session=session).deliver(frame)

        assert not result.ok
        assert "connection refused" in result.error

    def test_timeout(self, frame):
        session = make_session()
        session.post.side_effect = requests.Timeout("read timed out")
        config = BackendConfig(url=URL, timeout=2.5)

        result = HttpSink(config, session=session).deliver(frame)

        assert not result.ok
        assert session.post.call_args.kwargs["timeout"] == 2.5

    def test_requires_url(self):
        with pytest.raises(ValueError):
            HttpSink(BackendConfig())

    def test_close_closes_session(self):
        session = make_session()
        HttpSink(BackendConfig(url=URL), session=session).close()
        session.close.assert_called_once()


class TestCreateSink:
    def test_dry_run_without_url(self, caplog):
        caplog.set_level(logging.WARNING)
        sink = create_sink(BackendConfig())

        assert isinstance(sink, NullSink)
        assert "dry-run" in caplog.text

    def test_http_sink_with_url(self):
        sink = create_sink(BackendConfig(url=URL))
        try:
            assert isinstance(sink, HttpSink)
            assert sink.url == URL
        finally:
            sink.close()
