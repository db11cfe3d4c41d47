"""Shared test fixtures for the dbhash test suite."""

from __future__ import annotations

import hashlib

import pytest

from dbhash.config import Settings
from dbhash.content_hash import BLOCK_SIZE


def reference_content_hash(data: bytes, name: str = "sha256") -> str:
    """Straight-line rendition of the scheme, used as the oracle in tests."""
    blocks = [data[i:i + BLOCK_SIZE] for i in range(0, len(data), BLOCK_SIZE)] or [b""]
    joined = b"".join(hashlib.new(name, block).digest() for block in blocks)
    return hashlib.new(name, joined).hexdigest()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture()
def test_settings() -> Settings:
    """Settings with a dummy token and local API hosts."""
    return Settings(
        dropbox_token="test-token",
        dropbox_api_url="https://api.test/2",
        dropbox_content_url="https://content.test/2",
        _env_file=None,
    )


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------

@pytest.fixture()
def reference():
    """The straight-line reference implementation."""
    return reference_content_hash


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def multi_block_data() -> bytes:
    """Two full blocks plus a 1000-byte tail, with distinct block contents."""
    return b"a" * BLOCK_SIZE + b"b" * BLOCK_SIZE + bytes(range(200)) * 5
