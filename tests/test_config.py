"""Tests for dbhash.config — Settings construction and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from dbhash.algorithms import HashAlgorithm
from dbhash.config import Settings, get_settings
from dbhash.content_hash import BLOCK_SIZE


def test_default_values(monkeypatch):
    """Default values are applied when not overridden."""
    for var in ("DROPBOX_TOKEN", "DROPBOX_TOKENS", "HASH_ALGORITHM", "READ_CHUNK_SIZE"):
        monkeypatch.delenv(var, raising=False)
    s = Settings(_env_file=None)
    assert s.dropbox_token == ""
    assert s.dropbox_tokens == {}
    assert s.hash_algorithm is HashAlgorithm.SHA256
    assert s.read_chunk_size == BLOCK_SIZE
    assert s.dropbox_api_url == "https://api.dropboxapi.com/2"
    assert s.dropbox_content_url == "https://content.dropboxapi.com/2"


def test_constructor_with_overrides():
    s = Settings(dropbox_token="tok", dropbox_tokens={"main": "t2"}, _env_file=None)
    assert s.dropbox_token == "tok"
    assert s.dropbox_tokens == {"main": "t2"}


def test_algorithm_name_normalized():
    """Dashed and upper-case names resolve to the enum member."""
    s = Settings(hash_algorithm="SHA-1", _env_file=None)
    assert s.hash_algorithm is HashAlgorithm.SHA1


def test_unknown_algorithm_rejected():
    with pytest.raises(ValidationError):
        Settings(hash_algorithm="crc32", _env_file=None)


def test_non_positive_chunk_size_rejected():
    with pytest.raises(ValidationError):
        Settings(read_chunk_size=0, _env_file=None)


def test_env_vars(monkeypatch):
    """Settings are read from the environment."""
    monkeypatch.setenv("DROPBOX_TOKEN", "env-token")
    monkeypatch.setenv("DROPBOX_TOKENS", '{"foo@bar": "scoped"}')
    monkeypatch.setenv("HASH_ALGORITHM", "sha3_256")
    s = Settings(_env_file=None)
    assert s.dropbox_token == "env-token"
    assert s.dropbox_tokens == {"foo@bar": "scoped"}
    assert s.hash_algorithm is HashAlgorithm.SHA3_256


def test_get_settings_factory():
    """get_settings() returns a Settings instance with overrides."""
    s = get_settings(dropbox_token="x", _env_file=None)
    assert isinstance(s, Settings)
    assert s.dropbox_token == "x"
