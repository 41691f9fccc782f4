# -*- coding: utf-8 -*-


"""
common utils for hashdrop
"""


import gzip
import hashlib
import os
import random
import re
from collections import namedtuple
from datetime import datetime
from typing import BinaryIO, Union

import fs as pyfs
from fs.osfs import OSFS

#: Symbols an identifier is drawn from.
ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

#: Read size used when streaming files.
BLOCKSIZE = 64 * 1024

_ID_BITS = 6
_ID_MASK = (1 << _ID_BITS) - 1
_ID_PER_DRAW = 63 // _ID_BITS

_ID_PATTERN = re.compile(r"^[{0}]+$".format(ALPHABET))


def load_fs(root: Union[pyfs.base.FS, str]) -> pyfs.base.FS:
    """Return `root` if it is already a filesystem, else an OS filesystem
    rooted at the path, creating it if needed.
    """
    if isinstance(root, pyfs.base.FS):
        return root
    return OSFS(os.path.realpath(str(root)), create=True)


def computehash(fileobj: BinaryIO, algorithm: str = "sha256") -> str:
    """Compute the hex digest of everything readable from `fileobj`."""
    hash = hashlib.new(algorithm)
    for data in iter(lambda: fileobj.read(BLOCKSIZE), b""):
        hash.update(data)
    return hash.hexdigest()


def fnv32a(data: bytes) -> int:
    """32-bit FNV-1a hash of `data`."""
    h = 0x811C9DC5
    for byte in data:
        h ^= byte
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h


def shortid(digest: str, length: int = 6) -> str:
    """Derive a short identifier from a content digest.

    The digest is reduced to a 32-bit seed which drives a private
    :class:`random.Random`. Each 63-bit draw is consumed six bits at a time,
    and any 6-bit value past the end of :data:`ALPHABET` is rejected, so the
    same digest always yields the same identifier.
    """
    rng = random.Random(fnv32a(digest.encode("utf8")))
    chars = []
    cache, remain = rng.getrandbits(63), _ID_PER_DRAW

    while len(chars) < length:
        if remain == 0:
            cache, remain = rng.getrandbits(63), _ID_PER_DRAW
        idx = cache & _ID_MASK
        if idx < len(ALPHABET):
            chars.append(ALPHABET[idx])
        cache >>= _ID_BITS
        remain -= 1

    # Symbols are placed from the right.
    return "".join(reversed(chars))


def is_identifier(value: str) -> bool:
    """Return whether `value` could have been produced by :func:`shortid`."""
    return bool(value) and bool(_ID_PATTERN.match(value))


def gzip_writer(fileobj: BinaryIO) -> gzip.GzipFile:
    """Wrap `fileobj` in a gzip writer whose header carries no timestamp or
    filename, so equal input always compresses to equal bytes.
    """
    return gzip.GzipFile(filename="", mode="wb", fileobj=fileobj, mtime=0)


def basename(filename: str) -> str:
    """Reduce a client supplied filename to its final path component."""
    name = os.path.basename(str(filename).replace("\\", "/"))
    if name in ("", ".", ".."):
        raise ValueError("No filename provided.")
    return name


class ContentObject(namedtuple("ContentObject", [
        "id",
        "name",
        "hash",
        "size",
        "content_type",
        "modified",
        "is_ascii",
        "is_text",
        "is_image",
        "is_audio",
        "is_video"])):
    """Metadata of a published object.

    Attributes:
        id (str): Short content-derived identifier, also the directory name.
        name (str): Original filename; the payload is stored under it.
        hash (str): Hex digest of the compressed payload.
        size (int): Logical size in bytes before compression.
        content_type (str): Sniffed MIME type.
        modified (datetime): Time of publishing, timezone aware.
        is_ascii (bool): Whether the payload head is plain ASCII.
        is_text, is_image, is_audio, is_video (bool): Content type families.
    """

    @property
    def relpath(self) -> str:
        """Path of the payload relative to the store root."""
        return pyfs.path.join(self.id, self.name)

    @property
    def sidecar(self) -> str:
        """Path of the metadata sidecar relative to the store root."""
        return sidecar_path(self.id)

    def to_dict(self) -> dict:
        data = self._asdict()
        data["modified"] = self.modified.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ContentObject":
        values = {field: data[field] for field in cls._fields}
        values["modified"] = datetime.fromisoformat(values["modified"])
        values["size"] = int(values["size"])
        return cls(**values)


def sidecar_path(identifier: str) -> str:
    """Path of the metadata sidecar for `identifier`."""
    return pyfs.path.join(identifier, "{0}.json.gz".format(identifier))


def to_bytes(data) -> bytes:
    """Encode text as UTF-8, pass bytes through."""
    if not isinstance(data, bytes):
        data = bytes(data, "utf8")
    return data
