"""Dropbox API v2 client: metadata, downloads and content-hash verification."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from dbhash.algorithms import HashAlgorithm
from dbhash.config import Settings
from dbhash.content_hash import ContentHasher
from dbhash.hasher import hash_file

logger = logging.getLogger(__name__)

# Dropbox reports content_hash computed with SHA-256
DROPBOX_HASH_ALGORITHM = HashAlgorithm.SHA256
EMPTY_FILE_HASH = DROPBOX_HASH_ALGORITHM.new().hexdigest()

TokenProvider = Callable[[str | None], str | None]

# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class FileMetadata:
    """Subset of Dropbox file metadata relevant to content hashing."""

    name: str = ""
    id: str = ""
    path_display: str = ""
    size: int = 0
    content_hash: str | None = None
    rev: str = ""
    server_modified: datetime | None = None
    client_modified: datetime | None = None
    tag: str = "file"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> FileMetadata:
        return cls(
            name=data.get("name", ""),
            id=data.get("id", ""),
            path_display=data.get("path_display", ""),
            size=data.get("size", 0),
            content_hash=data.get("content_hash"),
            rev=data.get("rev", ""),
            server_modified=_parse_timestamp(data.get("server_modified")),
            client_modified=_parse_timestamp(data.get("client_modified")),
            tag=data.get(".tag", "file"),
        )


@dataclass
class VerifyResult:
    """Outcome of comparing a computed content hash with Dropbox's."""

    path: str
    expected: str
    actual: str

    @property
    def matches(self) -> bool:
        return self.expected == self.actual


# ---------------------------------------------------------------------------
# Token lookup
# ---------------------------------------------------------------------------


def resolve_token(
    settings: Settings,
    authority: str | None = None,
    token_provider: TokenProvider | None = None,
) -> str:
    """Find the access token for ``authority``.

    A token provider wins over per-authority tokens, which win over the
    catch-all ``dropbox_token``.
    """
    if token_provider is not None:
        token = token_provider(authority)
        if token:
            return token
        raise InvalidReferenceError(f"no token for authority ({authority!r})")

    token = settings.dropbox_tokens.get(authority or "")
    if token:
        return token
    if settings.dropbox_token:
        return settings.dropbox_token
    raise InvalidReferenceError(f"no token for authority ({authority!r})")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _is_retryable(exc: BaseException) -> bool:
    """Determine whether an exception should trigger a retry."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    if isinstance(exc, (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout)):
        return True
    return False


def format_api_error(status_code: int, body: dict[str, Any], path: str) -> DropboxError:
    """Map a Dropbox JSON error body onto the exception taxonomy."""
    error = body.get("error")
    if isinstance(error, dict) and error.get(".tag") == "path":
        reason = (error.get("path") or {}).get(".tag")
        if reason == "malformed_path":
            return InvalidReferenceError("invalid path format")
        if reason == "restricted_content":
            return InvalidReferenceError("content is restricted")
        if reason in ("not_found", "not_file", "not_folder"):
            return UnknownResourceError(path)
    summary = body.get("error_summary", "")
    return DropboxAPIError(status_code, summary or json.dumps(body))


def _raise_for_response(resp: httpx.Response, path: str) -> None:
    """Raise for a non-200 response; 5xx goes through httpx for retries."""
    if resp.status_code == 200:
        return
    if resp.status_code >= 500:
        resp.raise_for_status()
    if resp.status_code == 400:
        raise DropboxAPIError(400, resp.text)
    try:
        body = resp.json()
    except ValueError:
        raise DropboxAPIError(resp.status_code, resp.text) from None
    if not isinstance(body, dict):
        raise DropboxAPIError(resp.status_code, resp.text)
    raise format_api_error(resp.status_code, body, path)


def _api_result(resp: httpx.Response) -> FileMetadata:
    """Decode the metadata a download carries in its dropbox-api-result header."""
    raw = resp.headers.get("dropbox-api-result")
    if raw is None:
        raise DropboxAPIError(resp.status_code, "unable to process api result")
    try:
        data = json.loads(raw)
    except ValueError:
        raise DropboxAPIError(resp.status_code, "unable to process api result") from None
    return FileMetadata.from_api(data)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class DropboxClient:
    """Read-only client for the Dropbox files API."""

    def __init__(
        self,
        settings: Settings,
        authority: str | None = None,
        token_provider: TokenProvider | None = None,
    ) -> None:
        self.settings = settings
        self.authority = authority
        self.token_provider = token_provider
        self.api_url = settings.dropbox_api_url.rstrip("/")
        self.content_url = settings.dropbox_content_url.rstrip("/")
        self.algorithm = settings.hash_algorithm
        self.chunk_size = settings.read_chunk_size
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            token = resolve_token(self.settings, self.authority, self.token_provider)
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.dropbox_timeout, connect=30.0),
                headers={"Authorization": f"Bearer {token}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> DropboxClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=4, min=4, max=16),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def get_metadata(self, path: str) -> FileMetadata:
        """Fetch metadata for a path (``/a/b.txt``) or id (``id:...``)."""
        client = await self._get_client()
        logger.debug("Fetching metadata for %s", path)

        resp = await client.post(
            f"{self.api_url}/files/get_metadata",
            json={"path": path},
        )
        _raise_for_response(resp, path)
        return FileMetadata.from_api(resp.json())

    async def exists(self, path: str) -> bool:
        """True if the path resolves to something; other errors propagate."""
        try:
            await self.get_metadata(path)
        except UnknownResourceError:
            return False
        return True

    # -------------------------------------------------------------------
    # Download + hash
    # -------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=4, min=4, max=16),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def _download_hasher(
        self,
        path: str,
        algorithm: HashAlgorithm | str | None = None,
    ) -> tuple[ContentHasher, FileMetadata]:
        hasher = ContentHasher(algorithm=algorithm or self.algorithm)
        client = await self._get_client()
        logger.info("Downloading %s for hashing (%s)", path, hasher.algorithm)

        async with client.stream(
            "POST",
            f"{self.content_url}/files/download",
            headers={"Dropbox-API-Arg": json.dumps({"path": path})},
        ) as resp:
            if resp.status_code != 200:
                await resp.aread()
                _raise_for_response(resp, path)
            metadata = _api_result(resp)
            async for chunk in resp.aiter_bytes(self.chunk_size):
                hasher.update(chunk)

        logger.info("Hashed %s (%d bytes)", path, hasher.state.total_size)
        return hasher, metadata

    async def download_content_hash(
        self,
        path: str,
        algorithm: HashAlgorithm | str | None = None,
    ) -> tuple[str, FileMetadata]:
        """Stream a file's content through the hasher without buffering it.

        Returns the computed content hash and the file's metadata.
        """
        hasher, metadata = await self._download_hasher(path, algorithm)
        return hasher.hexdigest(), metadata

    async def verify(self, path: str) -> VerifyResult:
        """Download ``path`` and check it against Dropbox's content_hash."""
        hasher, metadata = await self._download_hasher(path, DROPBOX_HASH_ALGORITHM)
        expected = _expected_hash(metadata, path)
        result = VerifyResult(path=path, expected=expected, actual=dropbox_content_hash(hasher))
        if not result.matches:
            logger.warning("Content hash mismatch for %s: expected %s, got %s", path, expected, result.actual)
        return result

    async def verify_local(self, path: str, local_file: Path) -> VerifyResult:
        """Compare a local file with the remote content_hash, without downloading."""
        metadata = await self.get_metadata(path)
        expected = _expected_hash(metadata, path)
        hasher = hash_file(local_file, DROPBOX_HASH_ALGORITHM, self.chunk_size)
        result = VerifyResult(path=path, expected=expected, actual=dropbox_content_hash(hasher))
        if not result.matches:
            logger.warning("Local file %s differs from %s", local_file, path)
        return result


def dropbox_content_hash(hasher: ContentHasher) -> str:
    """The content hash in the form Dropbox reports it.

    Dropbox hashes no blocks at all for an empty file, so its value is the
    digest of empty input rather than the digest of one empty-block digest.
    """
    if hasher.state.total_size == 0:
        return EMPTY_FILE_HASH
    return hasher.hexdigest()


def _expected_hash(metadata: FileMetadata, path: str) -> str:
    if metadata.tag != "file" or not metadata.content_hash:
        raise UnknownResourceError(path)
    return metadata.content_hash


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DropboxError(Exception):
    """Base class for Dropbox access failures."""


class InvalidReferenceError(DropboxError):
    """The path, id or credentials cannot be used to reach a resource."""


class UnknownResourceError(DropboxError):
    """Nothing exists at the given path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"unknown resource: {path}")


class DropboxAPIError(DropboxError):
    """Raised for any other Dropbox API failure."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Dropbox API error {status_code}: {message}")
