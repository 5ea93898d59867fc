"""
Pytest configuration and shared fixtures for the TWELITE bridge tests.
"""

import pytest

from twelite_bridge.protocol import checksum

# Status notify line from the TWELITE App_Twelite reference
SAMPLE_LINE = ":7881150175810000380026C9000C04220000FFFFFFFFFFA7"


def build_line(body: bytes) -> str:
    """Build a wire line from 23 body bytes, appending a matching checksum."""
    assert len(body) == 23
    return ":" + (body + bytes([checksum(body)])).hex().upper()


@pytest.fixture
def sample_line() -> str:
    return SAMPLE_LINE


@pytest.fixture
def sample_body() -> bytearray:
    """The 23 bytes of SAMPLE_LINE before its checksum, ready to modify."""
    return bytearray.fromhex(SAMPLE_LINE[1:-2])
