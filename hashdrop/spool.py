"""Module for TempSpool class."""

import logging
from tempfile import NamedTemporaryFile
from typing import BinaryIO, Tuple

import fs as pyfs
from fs.errors import FSError, ResourceNotFound

from .errors import SizeLimitExceeded, SpoolWriteFailed
from .utils import BLOCKSIZE, gzip_writer, to_bytes

logger = logging.getLogger(__name__)

#: Name prefix of every staging artifact.
PREFIX = "sharetemp"


def copymax(dst: BinaryIO, src: BinaryIO, max_bytes: int) -> int:
    """Copy at most `max_bytes` from `src` to `dst` and return the count.

    Raises:
        SizeLimitExceeded: If `max_bytes` were copied before `src` ran dry.
    """
    n = 0
    while n < max_bytes:
        data = src.read(min(BLOCKSIZE, max_bytes - n))
        if not data:
            return n
        data = to_bytes(data)[:max_bytes - n]
        dst.write(data)
        n += len(data)

    raise SizeLimitExceeded(
        "Upload exceeds maximum size ({0} bytes).".format(max_bytes))


def is_staging(name: str) -> bool:
    """Return whether a root level entry is a staging artifact."""
    return pyfs.path.basename(name).startswith(PREFIX)


class TempSpool(object):
    """Stages inbound byte streams in uniquely named files at the root of an
    OS backed filesystem.

    Staged files are referred to by their path inside :attr:`fs`, so they can
    be renamed into the content tree with :meth:`fs.base.FS.move`.

    Attributes:
        fs: Filesystem the staging files live in. It must map to real paths.
    """

    def __init__(self, fs: pyfs.base.FS):
        self.fs = fs
        self.root = fs.getsyspath("/")

    def create(self) -> str:
        """Reserve an empty staging file and return its path."""
        try:
            tmp = NamedTemporaryFile(dir=self.root, prefix=PREFIX, delete=False)
        except OSError as exc:
            raise SpoolWriteFailed(
                "Could not create staging file: {0}".format(exc)) from exc
        tmp.close()
        return self._fspath(tmp.name)

    def write(self,
              src: BinaryIO,
              max_bytes: int,
              compress: bool = False) -> Tuple[str, int]:
        """Copy `src` into a new staging file.

        Args:
            src: Readable object.
            max_bytes: Ceiling on the bytes read from `src`. Reaching it fails
                the write.
            compress: Gzip the staged file.

        Returns:
            Pair of staging path and number of bytes read from `src`.

        Raises:
            SizeLimitExceeded: If `src` holds `max_bytes` or more.
            SpoolWriteFailed: If the staging file cannot be written.
        """
        path = self.create()
        done = False

        try:
            with self.fs.open(path, "wb") as tmp:
                if compress:
                    with gzip_writer(tmp) as out:
                        n = copymax(out, src, max_bytes)
                else:
                    n = copymax(tmp, src, max_bytes)
            done = True
        except (OSError, FSError) as exc:
            raise SpoolWriteFailed(
                "Could not write staging file: {0}".format(exc)) from exc
        finally:
            if not done:
                self.discard(path)

        logger.debug("staged %d bytes to %s", n, path)
        return (path, n)

    def discard(self, path: str) -> None:
        """Remove a staging file. Failures are logged, never raised."""
        try:
            self.fs.remove(path)
        except ResourceNotFound:
            pass
        except FSError as exc:
            logger.warning("could not remove staging file %s: %s", path, exc)

    def _fspath(self, syspath: str) -> str:
        return pyfs.path.join("/", pyfs.path.basename(syspath.replace("\\", "/")))
