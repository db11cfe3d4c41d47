"""Content hashing of local files and binary streams."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from dbhash.algorithms import DEFAULT_ALGORITHM, HashAlgorithm
from dbhash.content_hash import BLOCK_SIZE, ContentHasher, final_block_digests

logger = logging.getLogger(__name__)

CHUNK_SIZE = BLOCK_SIZE


def hash_stream(
    stream: BinaryIO,
    algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM,
    chunk_size: int = CHUNK_SIZE,
) -> ContentHasher:
    """Feed ``stream`` through a ContentHasher, reading in chunks."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    hasher = ContentHasher(algorithm=algorithm)
    while chunk := stream.read(chunk_size):
        hasher.update(chunk)
    return hasher


def hash_file(
    path: Path,
    algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM,
    chunk_size: int = CHUNK_SIZE,
) -> ContentHasher:
    """Read a whole file into a ContentHasher."""
    with open(path, "rb") as f:
        hasher = hash_stream(f, algorithm, chunk_size)
    logger.debug("Hashed %s (%d bytes, %s)", path, hasher.state.total_size, hasher.algorithm)
    return hasher


def content_hash_stream(
    stream: BinaryIO,
    algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM,
    chunk_size: int = CHUNK_SIZE,
) -> str:
    """Compute the content hash of everything left in ``stream``."""
    return hash_stream(stream, algorithm, chunk_size).hexdigest()


def content_hash_file(
    path: Path,
    algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM,
    chunk_size: int = CHUNK_SIZE,
) -> str:
    """Compute the content hash of a file, reading in chunks."""
    return hash_file(path, algorithm, chunk_size).hexdigest()


def block_digests(hasher: ContentHasher) -> list[str]:
    """Hex digest of every block that enters the final hash, in order."""
    return [d.hex() for d in final_block_digests(hasher.state)]


def block_digests_file(
    path: Path,
    algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM,
    chunk_size: int = CHUNK_SIZE,
) -> list[str]:
    """Hex digest of every 4 MiB block of a file.

    Two copies of a large file can be compared block by block to find
    where they differ, without transferring either.
    """
    return block_digests(hash_file(path, algorithm, chunk_size))
