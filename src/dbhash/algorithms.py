"""Supported digest algorithms for the content hash."""

from __future__ import annotations

import hashlib
from enum import Enum


class HashAlgorithm(str, Enum):
    """Closed set of digest functions usable under the block framing.

    Values are the ``hashlib`` names, so a member can be handed straight to
    ``hashlib.new``.
    """

    MD5 = "md5"  # compatibility only
    SHA1 = "sha1"
    SHA224 = "sha224"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"
    SHA3_224 = "sha3_224"
    SHA3_256 = "sha3_256"
    SHA3_384 = "sha3_384"
    SHA3_512 = "sha3_512"
    RIPEMD160 = "ripemd160"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str | HashAlgorithm) -> HashAlgorithm:
        """Resolve ``"SHA-256"``, ``"sha3-256"``, ``"RIPEMD160"`` etc.

        Raises ValueError for names outside the supported set.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("-", "_")
        # "sha_256" -> "sha256", but keep the sha3_ prefix intact
        if key.startswith("sha_"):
            key = "sha" + key[4:]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported hash algorithm: {name!r}") from None

    @property
    def available(self) -> bool:
        """Whether the running hashlib build provides this digest."""
        return self.value in hashlib.algorithms_available

    @property
    def digest_size(self) -> int:
        return self.new().digest_size

    @property
    def hex_length(self) -> int:
        return 2 * self.digest_size

    def new(self, data: bytes = b""):
        """Return a fresh ``hashlib`` object for this algorithm."""
        return hashlib.new(self.value, data)

    def digest(self, data: bytes) -> bytes:
        return self.new(data).digest()


DEFAULT_ALGORITHM = HashAlgorithm.SHA256


def available_algorithms() -> list[HashAlgorithm]:
    """Algorithms the current interpreter can actually compute."""
    return [algo for algo in HashAlgorithm if algo.available]
