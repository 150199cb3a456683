"""Blob and config store collaborators used by the archive reader.

The reader never downloads a whole archive. It only needs a blob store that
can return a byte range or a trailing suffix of a named object, and a small
key/value config store that names the archive to serve.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from rangefs.core.config import HttpStoreConfig

logger = structlog.get_logger()


class BlobStore(ABC):
    """Read-only object store supporting ranged reads."""

    @abstractmethod
    async def read_range(self, name: str, offset: int, length: int) -> bytes | None:
        """Read length bytes starting at offset.

        Returns:
            The bytes, or None if the object does not exist
        """
        ...

    @abstractmethod
    async def read_suffix(self, name: str, length: int) -> bytes | None:
        """Read the last length bytes of an object.

        Returns:
            The bytes, or None if the object does not exist
        """
        ...


class ConfigStore(ABC):
    """String key/value store."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if absent."""
        ...


class MemoryBlobStore(BlobStore):
    """Blob store backed by an in-memory dict."""

    def __init__(self, objects: dict[str, bytes] | None = None):
        self.objects: dict[str, bytes] = dict(objects or {})

    def put(self, name: str, data: bytes) -> None:
        self.objects[name] = bytes(data)

    async def read_range(self, name: str, offset: int, length: int) -> bytes | None:
        data = self.objects.get(name)
        if data is None:
            return None
        return data[offset:offset + length]

    async def read_suffix(self, name: str, length: int) -> bytes | None:
        data = self.objects.get(name)
        if data is None:
            return None
        return data[-length:] if length else b""


class FileBlobStore(BlobStore):
    """Blob store serving files from a local directory.

    Object names are resolved relative to root and may not escape it.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _resolve(self, name: str) -> Path | None:
        root = self.root.resolve()
        path = (root / name).resolve()
        if path != root and root not in path.parents:
            logger.warning("blob_name_outside_root", name=name, root=str(root))
            return None
        return path if path.is_file() else None

    def _read(self, name: str, offset: int | None, length: int) -> bytes | None:
        path = self._resolve(name)
        if path is None:
            return None
        with open(path, "rb") as f:
            if offset is None:
                size = f.seek(0, 2)
                f.seek(max(0, size - length))
            else:
                f.seek(offset)
            return f.read(length)

    async def read_range(self, name: str, offset: int, length: int) -> bytes | None:
        return await asyncio.to_thread(self._read, name, offset, length)

    async def read_suffix(self, name: str, length: int) -> bytes | None:
        return await asyncio.to_thread(self._read, name, None, length)


class HttpBlobStore(BlobStore):
    """Blob store reading objects over HTTP with Range requests.

    Objects are addressed as ``{base_url}/{name}``. Servers that ignore the
    Range header and answer 200 with the full body are tolerated by slicing
    the response locally.
    """

    def __init__(
        self,
        base_url: str,
        config: HttpStoreConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize HTTP blob store.

        Args:
            base_url: URL prefix objects live under
            config: Optional HTTP configuration
            client: Optional preconfigured client (owned by the caller)
        """
        self.base_url = base_url.rstrip("/")
        self.config = config or HttpStoreConfig()
        self._async_client = client
        self._owns_client = client is None

    @property
    def async_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
            )
        return self._async_client

    def _url(self, name: str) -> str:
        return f"{self.base_url}/{quote(name)}"

    async def _get(self, name: str, range_header: str) -> httpx.Response | None:
        url = self._url(name)
        response = await self.async_client.get(url, headers={"Range": range_header})
        if response.status_code in (404, 416):
            logger.debug("blob_fetch_missing", url=url, range=range_header, status=response.status_code)
            return None
        response.raise_for_status()
        return response

    async def read_range(self, name: str, offset: int, length: int) -> bytes | None:
        if length == 0:
            return b""
        response = await self._get(name, f"bytes={offset}-{offset + length - 1}")
        if response is None:
            return None
        if response.status_code == 206:
            return response.content
        return response.content[offset:offset + length]

    async def read_suffix(self, name: str, length: int) -> bytes | None:
        if length == 0:
            return b""
        response = await self._get(name, f"bytes=-{length}")
        if response is None:
            return None
        if response.status_code == 206:
            return response.content
        return response.content[-length:]

    async def aclose(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._async_client is not None and self._owns_client:
            await self._async_client.aclose()
        self._async_client = None

    async def __aenter__(self) -> HttpBlobStore:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


class MemoryConfigStore(ConfigStore):
    """Config store backed by an in-memory dict."""

    def __init__(self, values: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(values or {})

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def get(self, key: str) -> str | None:
        return self.values.get(key)


class JsonConfigStore(ConfigStore):
    """Config store reading a flat JSON object from disk.

    The file is re-read on every lookup so that rotating the archive name
    takes effect without a restart. A missing file behaves as an empty store.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data: Any = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config store {self.path} must contain a JSON object")
        return data

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._load)
        value = data.get(key)
        return None if value is None else str(value)
