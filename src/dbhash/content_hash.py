"""Block-chunked content hash (the Dropbox content hash scheme).

The input stream is cut into fixed 4 MiB blocks. Each block is hashed on its
own, the block digests are concatenated in order, and the concatenation is
hashed again to give the content hash:

    content_hash = H(H(block_0) || H(block_1) || ... || H(block_n))

The block size is part of the scheme: digests only agree across
implementations when every one of them cuts at exactly 4 MiB.

Two API shapes are provided. ``hash_init``/``hash_update``/``hash_final``
thread an immutable ``HashState`` through return values; ``ContentHasher``
wraps that in a ``hashlib``-style object. A state (or hasher) belongs to a
single caller; do not feed the same state from two places.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Union

from dbhash.algorithms import DEFAULT_ALGORITHM, HashAlgorithm

BLOCK_SIZE = 4 * 1024 * 1024

BytesLike = Union[bytes, bytearray, memoryview]
# A buffer, or an arbitrarily nested sequence of buffers.
HashInput = Union[BytesLike, Iterable["HashInput"]]

_DONE = object()


@dataclass(frozen=True)
class HashState:
    """Carried state between partial input deliveries.

    ``block_hasher`` has absorbed the ``pending_size`` bytes of the current
    partial block; ``pending_size`` is always below ``BLOCK_SIZE``. A state
    never updates its own ``block_hasher``, it works on a copy. ``digests``
    is the concatenation of the completed block digests.
    """

    algorithm: HashAlgorithm = DEFAULT_ALGORITHM
    block_hasher: Any = field(default=None)
    pending_size: int = 0
    digests: bytes = b""

    def __post_init__(self) -> None:
        if self.block_hasher is None:
            object.__setattr__(self, "block_hasher", self.algorithm.new())

    @property
    def block_digests(self) -> tuple[bytes, ...]:
        size = self.block_hasher.digest_size
        return tuple(self.digests[i:i + size] for i in range(0, len(self.digests), size))

    @property
    def block_count(self) -> int:
        return len(self.digests) // self.block_hasher.digest_size

    @property
    def total_size(self) -> int:
        """Number of bytes consumed so far."""
        return self.block_count * BLOCK_SIZE + self.pending_size


def iter_buffers(data: HashInput) -> Iterator[memoryview]:
    """Flatten ``data`` into byte views, left to right.

    Anything supporting the buffer protocol is a leaf; other iterables are
    descended into. Empty buffers are yielded as-is; callers skip them.
    """
    stack = [iter((data,))]
    while stack:
        item = next(stack[-1], _DONE)
        if item is _DONE:
            stack.pop()
            continue
        if isinstance(item, str):
            raise TypeError("Strings must be encoded before hashing")
        try:
            view = memoryview(item)
        except TypeError:
            pass
        else:
            yield view.cast("B")
            continue
        try:
            stack.append(iter(item))
        except TypeError:
            raise TypeError(
                f"object supporting the buffer API or a sequence of them required, not {type(item).__name__!r}"
            ) from None


def hash_init(algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM) -> HashState:
    """Return a fresh state for ``algorithm``."""
    return HashState(algorithm=HashAlgorithm.from_name(algorithm))


def hash_update(state: HashState, data: HashInput) -> HashState:
    """Consume ``data`` and return the next state.

    ``state`` itself is left untouched and can still be finalized; it then
    reflects only the data consumed up to that point. Every full block is
    digested in this call, however many the input spans.
    """
    hasher = None
    size = state.pending_size
    completed: list[bytes] = []

    for view in iter_buffers(data):
        offset = 0
        remaining = len(view)
        while remaining:
            if hasher is None:
                hasher = state.block_hasher.copy()
            take = min(BLOCK_SIZE - size, remaining)
            hasher.update(view[offset:offset + take])
            offset += take
            remaining -= take
            size += take
            if size == BLOCK_SIZE:
                completed.append(hasher.digest())
                hasher = state.algorithm.new()
                size = 0

    if hasher is None:
        return state
    return HashState(
        algorithm=state.algorithm,
        block_hasher=hasher,
        pending_size=size,
        digests=state.digests + b"".join(completed) if completed else state.digests,
    )


def final_block_digests(state: HashState) -> tuple[bytes, ...]:
    """Block digests as they enter the final hash.

    The partial block is appended when it holds data, or when nothing was
    hashed at all (empty input hashes one empty block). Inputs that end on a
    block boundary get no trailing empty block.
    """
    if state.pending_size or not state.digests:
        return state.block_digests + (state.block_hasher.digest(),)
    return state.block_digests


def hash_final(state: HashState) -> str:
    """Return the lowercase hex content hash for ``state``."""
    joined = state.digests
    if state.pending_size or not joined:
        joined += state.block_hasher.digest()
    return state.algorithm.new(joined).hexdigest()


def content_hash(data: HashInput, algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM) -> str:
    """One-shot content hash of ``data``."""
    return hash_final(hash_update(hash_init(algorithm), data))


def hash_data(algorithm: HashAlgorithm | str, data: HashInput) -> str:
    """``content_hash`` with the algorithm first, for ``(algorithm, bytes)`` callers."""
    return content_hash(data, algorithm)


class StreamableHasher(NamedTuple):
    """The (init, update, final) triple an I/O layer drives incrementally."""

    init: Callable[[], HashState]
    update: Callable[[HashState, HashInput], HashState]
    final: Callable[[HashState], str]


def streamable_hasher(algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM) -> StreamableHasher:
    """Bind the init/update/final callables to ``algorithm``."""
    algo = HashAlgorithm.from_name(algorithm)
    return StreamableHasher(
        init=lambda: hash_init(algo),
        update=hash_update,
        final=hash_final,
    )


class ContentHasher:
    """``hashlib``-style front end to the content hash.

    ``digest()`` and ``hexdigest()`` snapshot the current state, so more data
    may follow. Not safe to share between threads.
    """

    block_size = BLOCK_SIZE

    def __init__(self, data: HashInput = b"", algorithm: HashAlgorithm | str = DEFAULT_ALGORITHM) -> None:
        self._state = hash_update(hash_init(algorithm), data)

    @property
    def name(self) -> str:
        return f"content_hash_{self._state.algorithm.value}"

    @property
    def algorithm(self) -> HashAlgorithm:
        return self._state.algorithm

    @property
    def digest_size(self) -> int:
        return self._state.algorithm.digest_size

    @property
    def state(self) -> HashState:
        return self._state

    def update(self, data: HashInput) -> None:
        self._state = hash_update(self._state, data)

    def digest(self) -> bytes:
        return bytes.fromhex(self.hexdigest())

    def hexdigest(self) -> str:
        return hash_final(self._state)

    def copy(self) -> ContentHasher:
        other = ContentHasher.__new__(ContentHasher)
        other._state = self._state
        return other
