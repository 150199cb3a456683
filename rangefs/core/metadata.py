"""HTTP-facing metadata for archive entries: content type, ETag, caching."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from rangefs.formats.index import ArchiveEntry

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    "html": "text/html; charset=utf-8",
    "htm": "text/html; charset=utf-8",
    "css": "text/css; charset=utf-8",
    "js": "application/javascript; charset=utf-8",
    "mjs": "application/javascript; charset=utf-8",
    "json": "application/json; charset=utf-8",
    "map": "application/json; charset=utf-8",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "avif": "image/avif",
    "ico": "image/x-icon",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    "xml": "application/xml",
    "txt": "text/plain; charset=utf-8",
    "wasm": "application/wasm",
    "pdf": "application/pdf",
}

HTML_EXTENSIONS = frozenset({"html", "htm"})

# HTML changes with every deploy, assets are expected to be content-addressed
CACHE_CONTROL_HTML = "public, max-age=0, must-revalidate"
CACHE_CONTROL_IMMUTABLE = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class ResponseMetadata:
    """Headers derived from an entry, independent of the request."""

    content_type: str
    cache_control: str
    etag: str


def get_extension(path: str) -> str:
    """Return the lowercase extension of the last path segment, or ''."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def content_type_for(path: str) -> str:
    """Look up the content type for a path by extension."""
    return CONTENT_TYPES.get(get_extension(path), DEFAULT_CONTENT_TYPE)


def is_html(path: str) -> bool:
    return get_extension(path) in HTML_EXTENSIONS


def cache_control_for(path: str) -> str:
    """Revalidate HTML on every request, cache everything else for a year."""
    return CACHE_CONTROL_HTML if is_html(path) else CACHE_CONTROL_IMMUTABLE


def compute_etag(archive_name: str, entry: ArchiveEntry) -> str:
    """Compute a strong ETag from an entry's identity within an archive.

    The tag covers the archive name, path, byte range and flags, so it is
    stable for an unchanged deploy and changes whenever the archive rotates.

    Args:
        archive_name: Blob name of the archive
        entry: Resolved entry

    Returns:
        Quoted entity tag
    """
    identity = f"{archive_name}:{entry.path}:{entry.offset}:{entry.length}:{entry.flags}"
    return f'"{hashlib.md5(identity.encode("utf-8")).hexdigest()}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Evaluate an If-None-Match header against an ETag.

    Uses weak comparison: a ``W/`` prefix on either side is ignored. Lists
    of tags and the ``*`` wildcard are honored.

    Args:
        if_none_match: Raw header value, or None when absent
        etag: Quoted entity tag of the current representation

    Returns:
        True if the client's cached copy is current
    """
    if not if_none_match:
        return False

    value = if_none_match.strip()
    if value == "*":
        return True

    target = _strip_weak(etag)
    return any(_strip_weak(tag.strip()) == target for tag in value.split(",") if tag.strip())


def _strip_weak(tag: str) -> str:
    return tag[2:] if tag.startswith("W/") else tag


def derive_metadata(archive_name: str, path: str, entry: ArchiveEntry) -> ResponseMetadata:
    """Derive response metadata for a resolved entry."""
    return ResponseMetadata(
        content_type=content_type_for(path),
        cache_control=cache_control_for(path),
        etag=compute_etag(archive_name, entry),
    )
