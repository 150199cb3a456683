"""Tests for the build, examine, validate and get commands."""

from __future__ import annotations

import gzip
import json
import re
import struct
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner

from rangefs.__main__ import main
from rangefs.commands.examine import get_statistics
from rangefs.commands.get import serve_local, serve_remote
from rangefs.core.config import HttpStoreConfig, ReaderConfig
from rangefs.core.reader import Request
from rangefs.formats.index import ArchiveEntry, ArchiveIndex


def _clean(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def archive(site_dir: Path, tmp_path: Path) -> Path:
    """Archive built from the minimal site."""
    output = tmp_path / "dist.rangefs"
    result = CliRunner().invoke(main, ["--output", "plain", "build", str(site_dir), str(output)])
    assert result.exit_code == 0, result.output
    return output


class TestBuildCommand:
    """Test the build command."""

    def test_build_plain(self, runner, site_dir, tmp_path):
        output = tmp_path / "out.rangefs"
        result = runner.invoke(main, ["--output", "plain", "build", str(site_dir), str(output)])

        assert result.exit_code == 0
        assert "2 entries" in result.output
        assert output.exists()

    def test_build_json(self, runner, site_dir, tmp_path):
        output = tmp_path / "out.rangefs"
        result = runner.invoke(main, ["-o", "json", "build", "-z", "gzip", str(site_dir), str(output)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["entries"] == 2
        assert data["compression"] == "gzip"
        assert data["input_size"] == 20
        assert data["archive_size"] == output.stat().st_size

    def test_build_rich(self, runner, site_dir, tmp_path):
        output = tmp_path / "out.rangefs"
        result = runner.invoke(main, ["build", str(site_dir), str(output)])

        assert result.exit_code == 0
        assert "Archive Built" in _clean(result.output)

    def test_build_uses_configured_compression(self, runner, site_dir, tmp_path):
        """Test compression defaults to the config file setting."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"compression": "brotli", "output_format": "json"}))
        output = tmp_path / "out.rangefs"

        result = runner.invoke(main, ["-c", str(config_file), "build", str(site_dir), str(output)])

        assert result.exit_code == 0
        assert json.loads(result.output)["compression"] == "brotli"

    def test_build_missing_input(self, runner, tmp_path):
        result = runner.invoke(main, ["build", str(tmp_path / "nope"), str(tmp_path / "out.rangefs")])

        assert result.exit_code == 1
        assert "Input directory does not exist" in result.output

    def test_build_unwritable_output(self, runner, site_dir, tmp_path):
        result = runner.invoke(main, ["build", str(site_dir), str(tmp_path / "missing" / "out.rangefs")])
        assert result.exit_code == 1


class TestExamineCommand:
    """Test the examine command."""

    def test_examine_json(self, runner, archive):
        result = runner.invoke(main, ["-o", "json", "examine", str(archive)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["size"] == archive.stat().st_size
        assert data["trailer"]["index_offset"] == 20
        assert data["statistics"]["total_entries"] == 2
        assert [e["path"] for e in data["entries"]] == ["css/site.css", "index.html"]

    def test_examine_limit_entries(self, runner, archive):
        result = runner.invoke(main, ["-o", "json", "examine", "-e", "1", str(archive)])
        assert len(json.loads(result.output)["entries"]) == 1

    def test_examine_plain(self, runner, archive):
        result = runner.invoke(main, ["-o", "plain", "examine", str(archive)])

        assert result.exit_code == 0
        assert "Entries: 2" in result.output
        assert "index.html" in result.output

    def test_examine_rich(self, runner, archive):
        result = runner.invoke(main, ["--verbose", "examine", str(archive)])

        assert result.exit_code == 0
        output = _clean(result.output)
        assert "Archive dist.rangefs" in output
        assert "css/site.css" in output

    def test_examine_not_an_archive(self, runner, tmp_path):
        bogus = tmp_path / "bogus.rangefs"
        bogus.write_bytes(b"short")

        result = runner.invoke(main, ["examine", str(bogus)])

        assert result.exit_code == 1
        assert "Failed to read archive" in result.output

    def test_get_statistics(self):
        """Test index statistics."""
        index = ArchiveIndex(entries=[
            ArchiveEntry(path="a.html", offset=0, length=10),
            ArchiveEntry(path="b.css", offset=10, length=30, flags=1),
        ])
        stats = get_statistics(index)
        assert stats["total_entries"] == 2
        assert stats["payload_size"] == 40
        assert stats["min_entry_size"] == 10
        assert stats["max_entry_size"] == 30
        assert stats["compression"] == {"raw": 1, "gzip": 1}
        assert stats["extensions"] == {"html": 1, "css": 1}

    def test_get_statistics_empty(self):
        stats = get_statistics(ArchiveIndex())
        assert stats["total_entries"] == 0
        assert stats["avg_entry_size"] == 0


class TestValidateCommand:
    """Test the validate command."""

    def test_valid(self, runner, archive):
        result = runner.invoke(main, ["validate", str(archive)])

        assert result.exit_code == 0
        assert "dist.rangefs: valid (2 entries)" in result.output

    def test_valid_json(self, runner, archive):
        result = runner.invoke(main, ["-o", "json", "validate", str(archive)])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"archive": str(archive), "valid": True, "problems": []}

    def test_gap_reported(self, runner, tmp_path):
        """Test a gap between payloads fails validation."""
        index = struct.pack("<I", 1) + struct.pack("<H", 1) + b"a" + struct.pack("<QQB", 2, 3, 0)
        broken = tmp_path / "broken.rangefs"
        broken.write_bytes(b"xxabc" + index + struct.pack("<QQ", 5, len(index)))

        result = runner.invoke(main, ["validate", str(broken)])

        assert result.exit_code == 1
        assert "starts at 2, expected 0" in result.output
        assert "1 layout problem(s)" in result.output


class TestGetCommand:
    """Test the get command."""

    def test_get_plain(self, runner, archive):
        result = runner.invoke(main, ["-o", "plain", "get", str(archive), "/"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "200"
        assert "content-type: text/html; charset=utf-8" in lines

    def test_get_json(self, runner, archive):
        result = runner.invoke(main, ["-o", "json", "get", str(archive), "/css/site.css"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == 200
        assert data["body_size"] == 8
        assert data["headers"]["cache-control"] == "public, max-age=31536000, immutable"

    def test_get_body(self, runner, archive):
        result = runner.invoke(main, ["get", "--body", str(archive), "/"])

        assert result.exit_code == 0
        assert result.stdout_bytes == b"<h1>Hi</h1>\n"

    def test_get_output_file(self, runner, archive, tmp_path):
        target = tmp_path / "page.html"
        result = runner.invoke(main, ["-o", "plain", "get", str(archive), "/", "-o", str(target)])

        assert result.exit_code == 0
        assert target.read_bytes() == b"<h1>Hi</h1>\n"

    def test_get_not_found(self, runner, archive):
        result = runner.invoke(main, ["-o", "plain", "get", str(archive), "/missing"])

        assert result.exit_code == 1
        assert result.output.splitlines()[0] == "404"

    def test_get_head(self, runner, archive):
        result = runner.invoke(main, ["-o", "json", "get", "-I", str(archive), "/"])

        data = json.loads(result.output)
        assert data["status"] == 200
        assert data["body_size"] == 0
        assert data["headers"]["content-length"] == "12"

    def test_get_method_not_allowed(self, runner, archive):
        result = runner.invoke(main, ["-o", "plain", "get", "-X", "DELETE", str(archive), "/"])
        assert result.exit_code == 1
        assert result.output.splitlines()[0] == "405"

    def test_get_conditional(self, runner, archive):
        first = json.loads(runner.invoke(main, ["-o", "json", "get", str(archive), "/"]).output)
        etag = first["headers"]["etag"]

        result = runner.invoke(main, ["-o", "json", "get", "--if-none-match", etag, str(archive), "/"])
        assert json.loads(result.output)["status"] == 304

    def test_get_rich(self, runner, archive):
        result = runner.invoke(main, ["get", str(archive), "/"])
        assert result.exit_code == 0
        assert "GET / -> 200" in _clean(result.output)

    def test_serve_local_accept_encoding(self, site_dir, tmp_path):
        """Test serving a gzip archive to a client that accepts gzip."""
        output = tmp_path / "gz.rangefs"
        CliRunner().invoke(main, ["build", "-z", "gzip", str(site_dir), str(output)])

        response = serve_local(output, Request(path="/", headers={"Accept-Encoding": "gzip"}))

        assert response.status == 200
        assert response.headers["Content-Encoding"] == "gzip"
        assert gzip.decompress(response.body) == b"<h1>Hi</h1>\n"

    def test_get_honors_reader_config(self, runner, site_dir, tmp_path):
        """Test reader settings from the config file reach the reader."""
        output = tmp_path / "gz.rangefs"
        runner.invoke(main, ["build", "-z", "gzip", str(site_dir), str(output)])
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"reader": {"passthrough_encoding": False}}))

        result = runner.invoke(
            main,
            ["-c", str(config_file), "-o", "json", "get", "--accept-encoding", "gzip", str(output), "/"],
        )

        assert result.exit_code == 0
        headers = json.loads(result.output)["headers"]
        assert "content-encoding" not in headers
        assert headers["content-length"] == "12"

    def test_get_missing_local_archive(self, runner, tmp_path):
        result = runner.invoke(main, ["get", str(tmp_path / "nope.rangefs"), "/"])
        assert result.exit_code == 2
        assert "does not exist" in result.output

    def test_serve_remote(self, archive):
        """Test serving through HTTP range requests against a published archive."""
        data = archive.read_bytes()
        ranges = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/sites/dist.rangefs"
            start, _, end = request.headers["Range"].removeprefix("bytes=").partition("-")
            ranges.append(request.headers["Range"])
            if start == "":
                return httpx.Response(206, content=data[-int(end):])
            return httpx.Response(206, content=data[int(start):int(end) + 1])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        response = serve_remote(
            "https://cdn.example.com/sites",
            "dist.rangefs",
            Request(path="/"),
            ReaderConfig(),
            HttpStoreConfig(timeout=5),
            client=client,
        )

        assert response.status == 200
        assert response.body == b"<h1>Hi</h1>\n"
        assert ranges[0] == "bytes=-16"
        assert len(ranges) == 3
