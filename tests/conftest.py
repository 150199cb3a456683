"""Pytest configuration and shared fixtures for rangefs tests."""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from rangefs.core.reader import ArchiveReader
from rangefs.core.stores import MemoryBlobStore, MemoryConfigStore
from rangefs.core.types import Compression
from rangefs.formats.builder import BuildResult, build_archive

INDEX_HTML = b"<h1>Hi</h1>\n"  # 12 bytes
SITE_CSS = b"b{c:d;}\n"  # 8 bytes

NESTED_FILES = {
    "index.html": b"<html>home</html>",
    "about/index.html": b"<html>about</html>",
    "blog/index.html": b"<html>blog</html>",
    "blog/first-post/index.html": b"<html>first</html>",
    "contact.html": b"<html>contact</html>",
    "assets/app.js": b"console.log('hi');",
    "assets/logo.png": b"\x89PNG\r\n\x1a\n" + b"\x00" * 24,
    "robots.txt": b"User-agent: *\n",
    "LICENSE": b"MIT",
    "empty.txt": b"",
}


class CountingBlobStore(MemoryBlobStore):
    """Memory blob store that records every read."""

    def __init__(self, objects: dict[str, bytes] | None = None):
        super().__init__(objects)
        self.reads: list[tuple[str, str, int, int | None]] = []

    async def read_range(self, name: str, offset: int, length: int) -> bytes | None:
        self.reads.append(("range", name, offset, length))
        return await super().read_range(name, offset, length)

    async def read_suffix(self, name: str, length: int) -> bytes | None:
        self.reads.append(("suffix", name, length, None))
        return await super().read_suffix(name, length)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """Minimal site: index.html (12 bytes) and css/site.css (8 bytes)."""
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "css" / "site.css").write_bytes(SITE_CSS)
    return root


@pytest.fixture
def nested_site_dir(tmp_path: Path) -> Path:
    """Site with directory index pages and assets."""
    root = tmp_path / "nested"
    for rel, data in NESTED_FILES.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return root


@pytest.fixture
def build_bytes(tmp_path: Path) -> Callable[..., tuple[bytes, BuildResult]]:
    """Factory building an archive and returning its bytes and summary."""

    def _build(input_dir: Path, compression: Compression = Compression.NONE) -> tuple[bytes, BuildResult]:
        output = tmp_path / f"{input_dir.name}-{compression.value}.rangefs"
        result = build_archive(input_dir, output, compression)
        return output.read_bytes(), result

    return _build


@pytest.fixture
def make_reader() -> Callable[..., tuple[ArchiveReader, CountingBlobStore, MemoryConfigStore]]:
    """Factory creating a reader over an in-memory archive."""

    def _make(
        archive: bytes,
        name: str = "dist.rangefs",
        **kwargs,
    ) -> tuple[ArchiveReader, CountingBlobStore, MemoryConfigStore]:
        blobs = CountingBlobStore({name: archive})
        configs = MemoryConfigStore({"ARCHIVE_FILENAME": name})
        return ArchiveReader(blobs, configs, **kwargs), blobs, configs

    return _make
