"""Content type sniffing for published payloads."""

import mimetypes
from collections import namedtuple

#: Number of leading bytes inspected.
HEADSIZE = 261

# (offset, signature, mime type)
SIGNATURES = (
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"BM", "image/bmp"),
    (0, b"%PDF-", "application/pdf"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"\x1f\x8b", "application/gzip"),
    (0, b"ID3", "audio/mpeg"),
    (0, b"fLaC", "audio/x-flac"),
    (0, b"OggS", "audio/ogg"),
    (0, b"\x1a\x45\xdf\xa3", "video/webm"),
    (4, b"ftyp", "video/mp4"),
)

Kind = namedtuple("Kind", ["content_type", "is_ascii"])


def isascii(head: bytes) -> bool:
    """Return whether every byte of `head` is 7-bit ASCII."""
    return all(byte < 0x80 for byte in head)


def _match(head: bytes):
    for offset, signature, mime in SIGNATURES:
        if head[offset:offset + len(signature)] == signature:
            return mime
    if head[:4] == b"RIFF":
        if head[8:12] == b"WAVE":
            return "audio/x-wav"
        if head[8:12] == b"WEBP":
            return "image/webp"
        if head[8:12] == b"AVI ":
            return "video/x-msvideo"
    return None


def sniff(filename: str, head: bytes) -> Kind:
    """Classify a payload from its name and its first :data:`HEADSIZE` bytes.

    Magic numbers win. Otherwise the filename extension is consulted, and
    failing that ASCII content is ``text/plain`` and anything else
    ``application/octet-stream``.
    """
    ascii = isascii(head)
    content_type = _match(head)

    if content_type is None:
        content_type = mimetypes.guess_type(filename)[0]

    if content_type is None:
        content_type = "text/plain" if ascii else "application/octet-stream"

    return Kind(content_type, ascii)
