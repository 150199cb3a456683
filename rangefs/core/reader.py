"""Archive reader: serves files out of an archive using ranged reads only.

Per request the reader:

1. Reads the archive name from the config store
2. Loads the archive index if it is not cached (trailer suffix read, then
   one ranged read of the index)
3. Resolves the request path to an entry
4. Answers 404, 304, a HEAD response, or fetches the entry's byte range and
   returns its (decompressed) content
"""

from __future__ import annotations

import gzip
import zlib
from dataclasses import dataclass, field

import brotli
import httpx
import structlog

from rangefs.core.cache import IndexCache, IndexMapping
from rangefs.core.config import ReaderConfig
from rangefs.core.errors import (
    ArchiveError,
    BlobNotFound,
    ConfigMissing,
    DecompressionFailure,
    IndexDecodeError,
)
from rangefs.core.metadata import ResponseMetadata, derive_metadata, etag_matches
from rangefs.core.stores import BlobStore, ConfigStore
from rangefs.core.types import CONTENT_ENCODINGS, EntryFlags
from rangefs.formats.index import TRAILER_SIZE, ArchiveEntry, decode_index, decode_trailer

logger = structlog.get_logger()

INDEX_DOCUMENT = "index.html"
ALLOWED_METHODS = ("GET", "HEAD")
COMPRESSION_MASK = EntryFlags.GZIP | EntryFlags.BROTLI


@dataclass
class Request:
    """Inbound request as seen by the reader."""

    method: str = "GET"
    path: str = "/"
    headers: httpx.Headers = field(default_factory=httpx.Headers)

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    @classmethod
    def from_url(
        cls,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
    ) -> Request:
        """Build a request from a full URL, keeping only its path."""
        return cls(method=method, path=httpx.URL(url).path, headers=httpx.Headers(headers or {}))


@dataclass
class Response:
    """Outbound response produced by the reader."""

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""


def normalize_path(request_path: str) -> str:
    """Strip one leading and one trailing slash from a request path."""
    path = request_path[1:] if request_path.startswith("/") else request_path
    return path[:-1] if path.endswith("/") else path


def accepted_encodings(accept_encoding: str | None) -> set[str]:
    """Parse an Accept-Encoding header into the set of acceptable codings."""
    if not accept_encoding:
        return set()

    accepted: set[str] = set()
    for part in accept_encoding.split(","):
        coding, _, params = part.strip().partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        quality = 1.0
        for param in params.split(";"):
            key, _, value = param.strip().partition("=")
            if key.strip().lower() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality > 0:
            accepted.add(coding)
    return accepted


class ArchiveReader:
    """Resolves request paths against an archive held in a blob store.

    Args:
        blob_store: Store holding the archive blob
        config_store: Store naming the archive to serve
        cache: Index cache shared across requests; a private one is created
            from config.cache_ttl when omitted
        config: Reader configuration
    """

    def __init__(
        self,
        blob_store: BlobStore,
        config_store: ConfigStore,
        cache: IndexCache | None = None,
        config: ReaderConfig | None = None,
    ):
        self.blob_store = blob_store
        self.config_store = config_store
        self.config = config or ReaderConfig()
        self.cache = cache if cache is not None else IndexCache(ttl=self.config.cache_ttl)

    async def resolve_archive_name(self) -> str:
        """Read the archive's blob name from the config store.

        Raises:
            ConfigMissing: If the key is absent or empty
        """
        name = await self.config_store.get(self.config.archive_key)
        if not name:
            raise ConfigMissing(self.config.archive_key)
        return name

    async def load_index(self, name: str) -> IndexMapping:
        """Fetch and parse an archive's index with two ranged reads.

        Raises:
            BlobNotFound: If the trailer or index cannot be fetched
            IndexDecodeError: If the trailer or index is malformed
        """
        trailer_data = await self.blob_store.read_suffix(name, TRAILER_SIZE)
        if trailer_data is None:
            raise BlobNotFound(name, "trailer")
        trailer = decode_trailer(trailer_data)

        index_data = await self.blob_store.read_range(name, trailer.index_offset, trailer.index_length)
        if index_data is None:
            raise BlobNotFound(name, "index")
        if len(index_data) != trailer.index_length:
            raise IndexDecodeError(
                f"Short index read from {name}: expected {trailer.index_length}, got {len(index_data)}"
            )

        entries = decode_index(index_data)
        logger.info(
            "index_loaded",
            archive=name,
            entries=len(entries),
            index_offset=trailer.index_offset,
            index_length=trailer.index_length,
        )
        return {entry.path: entry for entry in entries}

    async def ensure_index_loaded(self, name: str) -> IndexMapping:
        """Return the index for name, loading it at most once per identity."""
        return await self.cache.get_or_load(name, lambda: self.load_index(name))

    def resolve_path(self, index: IndexMapping, request_path: str) -> tuple[str, ArchiveEntry] | None:
        """Resolve a request path to an archive entry.

        The root maps to ``index.html``. A path without an entry and without
        a ``.`` is treated as a directory and retried with ``/index.html``.

        Returns:
            Tuple of (archive path, entry), or None if not found
        """
        path = normalize_path(request_path)
        if path == "":
            path = INDEX_DOCUMENT

        entry = index.get(path)
        if entry is not None:
            return path, entry

        if "." not in path:
            fallback = f"{path}/{INDEX_DOCUMENT}"
            entry = index.get(fallback)
            if entry is not None:
                return fallback, entry

        return None

    async def fetch_entry_bytes(self, name: str, entry: ArchiveEntry) -> bytes | None:
        """Fetch an entry's stored payload with one ranged read.

        Returns:
            Stored bytes, or None if the store reports the object missing

        Raises:
            BlobNotFound: If the store returns fewer bytes than the entry holds
        """
        data = await self.blob_store.read_range(name, entry.offset, entry.length)
        if data is not None and len(data) != entry.length:
            raise BlobNotFound(name, f"range {entry.offset}+{entry.length} for {entry.path}")
        return data

    def materialize(self, entry: ArchiveEntry, raw: bytes) -> bytes:
        """Decompress an entry's stored payload according to its flags.

        Raises:
            DecompressionFailure: If both compression bits are set or the
                payload does not decompress
        """
        if entry.is_gzip and entry.is_brotli:
            raise DecompressionFailure(
                f"Entry {entry.path} has both gzip and brotli flags set",
                path=entry.path,
                flags=entry.flags,
            )

        try:
            if entry.is_gzip:
                return gzip.decompress(raw)
            if entry.is_brotli:
                return brotli.decompress(raw)
        except (OSError, EOFError, zlib.error, brotli.error) as e:
            raise DecompressionFailure(
                f"Failed to decompress {entry.path}: {e}", path=entry.path, flags=entry.flags
            ) from e
        return raw

    def derive_metadata(self, name: str, path: str, entry: ArchiveEntry) -> ResponseMetadata:
        return derive_metadata(name, path, entry)

    def _negotiate_encoding(self, entry: ArchiveEntry, accept_encoding: str | None) -> str | None:
        """Pick the Content-Encoding to serve stored bytes under, if any."""
        if not self.config.passthrough_encoding:
            return None
        stored = EntryFlags(entry.flags & COMPRESSION_MASK)
        encoding = CONTENT_ENCODINGS.get(stored)
        if encoding is None:
            return None
        return encoding if encoding in accepted_encodings(accept_encoding) else None

    async def handle(self, request: Request) -> Response:
        """Serve a request.

        Never raises for store, decode or decompression failures; those
        become 5xx responses.
        """
        method = request.method.upper()
        if method not in ALLOWED_METHODS:
            return _text_response(405, "Method Not Allowed", {"Allow": ", ".join(ALLOWED_METHODS)})

        with structlog.contextvars.bound_contextvars(method=method, path=request.path):
            try:
                return await self._handle(method, request)
            except ArchiveError as e:
                logger.error("request_failed", error=str(e), error_type=type(e).__name__)
                return _text_response(500, "Internal Server Error")
            except (httpx.HTTPError, OSError, ValueError) as e:
                logger.error("store_request_failed", error=str(e), error_type=type(e).__name__)
                return _text_response(500, "Internal Server Error")
            except Exception as e:
                logger.exception("request_failed", error=str(e), error_type=type(e).__name__)
                return _text_response(500, "Internal Server Error")

    async def _handle(self, method: str, request: Request) -> Response:
        name = await self.resolve_archive_name()
        index = await self.ensure_index_loaded(name)

        resolved = self.resolve_path(index, request.path)
        if resolved is None:
            logger.debug("path_not_found")
            return _text_response(404, "Not Found")
        path, entry = resolved

        meta = self.derive_metadata(name, path, entry)
        headers = httpx.Headers({
            "Content-Type": meta.content_type,
            "Cache-Control": meta.cache_control,
            "ETag": meta.etag,
        })
        compressed = bool(entry.flags & COMPRESSION_MASK)
        if compressed and self.config.passthrough_encoding:
            headers["Vary"] = "Accept-Encoding"

        if etag_matches(request.headers.get("if-none-match"), meta.etag):
            return Response(status=304, headers=headers)

        encoding = self._negotiate_encoding(entry, request.headers.get("accept-encoding"))
        if encoding is not None:
            headers["Content-Encoding"] = encoding

        if method == "HEAD":
            if encoding is not None or not compressed:
                headers["Content-Length"] = str(entry.length)
            return Response(status=200, headers=headers)

        raw = await self.fetch_entry_bytes(name, entry)
        if raw is None:
            logger.warning("entry_blob_missing", archive=name, entry=path)
            return _text_response(404, "Not Found")

        body = raw if encoding is not None else self.materialize(entry, raw)
        headers["Content-Length"] = str(len(body))
        return Response(status=200, headers=headers, body=body)


def _text_response(status: int, text: str, extra: dict[str, str] | None = None) -> Response:
    body = text.encode("utf-8")
    headers = httpx.Headers({
        "Content-Type": "text/plain; charset=utf-8",
        "Content-Length": str(len(body)),
    })
    for key, value in (extra or {}).items():
        headers[key] = value
    return Response(status=status, headers=headers, body=body)
