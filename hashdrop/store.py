"""Module for ContentStore class."""

import gzip
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Sequence, Union

import fs as pyfs
from fs.errors import FSError, ResourceNotFound
from fs.permissions import Permissions

import hashdrop.utils as u
from .errors import NotFound, RenameFailed, SpoolWriteFailed
from .sniff import HEADSIZE, sniff
from .spool import TempSpool, is_staging

logger = logging.getLogger(__name__)


def _pour(src: BinaryIO, dst: BinaryIO) -> int:
    n = 0
    while True:
        data = src.read(u.BLOCKSIZE)
        if not data:
            return n
        dst.write(data)
        n += len(data)


class ContentStore(object):
    """Content addressed object store. Every object lives in a directory
    named after an identifier derived from the hash of its gzip'd payload::

        <root>/<id>/<filename>       gzip'd payload
        <root>/<id>/<id>.json.gz     gzip'd JSON metadata

    The sidecar is moved into place last, and only directories holding one
    count as published.

    Attributes:
        fs: Filesystem used as root of storage space. Must map to real paths.
        spool (TempSpool): Staging area at the root of :attr:`fs`.
        algorithm (str): Hash algorithm to use when computing the payload
            hash. Algorithm should be available in ``hashlib`` module.
            Defaults to ``'sha256'``.
        id_length (int): Length of derived identifiers. Defaults to ``6``.
        dmode (int, optional): Directory mode permission to set for object
            directories. Defaults to ``0o755``.
        on_publish (callable, optional): Called with every published
            :class:`ContentObject`. Must not block.
    """

    def __init__(self,
                 root: Union[pyfs.base.FS, str],
                 algorithm: str = "sha256",
                 id_length: int = 6,
                 dmode: Optional[int] = 0o755,
                 on_publish: Optional[Callable[[u.ContentObject], None]] = None):
        self.fs = u.load_fs(root)
        self.spool = TempSpool(self.fs)
        self.algorithm = algorithm
        self.id_length = id_length
        self.dmode = dmode
        self.on_publish = on_publish
        self._publish_lock = threading.Lock()

    def finalize(self, chunk_paths: Sequence[str], filename: str) -> u.ContentObject:
        """Concatenate staged chunks, in the given order, into one gzip'd
        payload and publish it.

        Every chunk file is removed once consumed, and all of them are removed
        if the concatenation fails.

        Args:
            chunk_paths: Staging paths ordered by chunk index.
            filename: Name to store the payload under.

        Returns:
            The published object.

        Raises:
            SpoolWriteFailed: If concatenation fails.
            RenameFailed: If the object cannot be published.
        """
        pending = list(chunk_paths)
        staged = None
        size = 0
        done = False

        try:
            filename = u.basename(filename)
            staged = self.spool.create()
            with self.fs.open(staged, "wb") as out, u.gzip_writer(out) as gz:
                while pending:
                    path = pending.pop(0)
                    try:
                        with self.fs.open(path, "rb") as src:
                            size += _pour(src, gz)
                    finally:
                        self.spool.discard(path)
            done = True
        except (OSError, FSError) as exc:
            logger.error("could not assemble %s: %s", filename, exc)
            raise SpoolWriteFailed(
                "Could not assemble {0}: {1}".format(filename, exc)) from exc
        finally:
            for path in pending:
                self.spool.discard(path)
            if staged and not done:
                self.spool.discard(staged)

        logger.debug("assembled %d chunks into %s (%d bytes)",
                     len(chunk_paths), staged, size)
        return self._publish(staged, filename, size)

    def publish_single_shot(self,
                            staged: str,
                            filename: str,
                            size: int) -> u.ContentObject:
        """Publish an already gzip'd staging file.

        Args:
            staged: Staging path, as returned by ``spool.write(...,
                compress=True)``.
            filename: Name to store the payload under.
            size: Uncompressed size of the staged payload.
        """
        try:
            filename = u.basename(filename)
        except ValueError:
            self.spool.discard(staged)
            raise
        return self._publish(staged, filename, size)

    def load_metadata(self, identifier: str) -> u.ContentObject:
        """Return the published object `identifier`.

        Raises:
            NotFound: If there is no object or its metadata is unreadable.
        """
        if not u.is_identifier(identifier):
            raise NotFound("Data with id '{0}' does not exist.".format(identifier))

        try:
            with self.fs.open(u.sidecar_path(identifier), "rb") as f, \
                    gzip.GzipFile(fileobj=f, mode="rb") as gz:
                data = json.loads(gz.read().decode("utf8"))
            return u.ContentObject.from_dict(data)
        except ResourceNotFound as exc:
            raise NotFound(
                "Data with id '{0}' does not exist.".format(identifier)) from exc
        except (OSError, EOFError, FSError, ValueError, KeyError, TypeError) as exc:
            raise NotFound(
                "Data with id '{0}' is unreadable: {1}".format(identifier, exc)) from exc

    def get(self, identifier: str) -> Optional[u.ContentObject]:
        """Return the published object `identifier`, or ``None``."""
        try:
            return self.load_metadata(identifier)
        except NotFound:
            return None

    @contextmanager
    def open(self, identifier: str, decompress: bool = False) -> Iterator[BinaryIO]:
        """Context manager yielding the payload of `identifier` as a binary
        stream, gzip'd unless `decompress` is set.

        Raises:
            NotFound: If there is no such object.
        """
        obj = self.load_metadata(identifier)
        try:
            f = self.fs.open(obj.relpath, "rb")
        except ResourceNotFound as exc:
            raise NotFound(
                "Data with id '{0}' does not exist.".format(identifier)) from exc

        with f:
            if decompress:
                with gzip.GzipFile(fileobj=f, mode="rb") as gz:
                    yield gz
            else:
                yield f

    def exists(self, identifier: str, filename: Optional[str] = None) -> bool:
        """Check whether `identifier` is published, optionally under
        `filename`.
        """
        if not u.is_identifier(identifier):
            return False
        if not self.fs.isfile(u.sidecar_path(identifier)):
            return False
        if filename is None:
            return True
        return self.fs.isfile(pyfs.path.join(identifier, u.basename(filename)))

    def delete(self, identifier: str) -> None:
        """Delete object `identifier` on behalf of a user.

        Raises:
            NotFound: If there is no such object directory.
        """
        if not u.is_identifier(identifier) or not self.fs.isdir(identifier):
            raise NotFound("Data with id '{0}' does not exist.".format(identifier))
        self.remove(identifier)
        logger.info("removed %s", identifier)

    def remove(self, identifier: str) -> bool:
        """Remove the directory of `identifier`, published or not. Return
        whether anything was removed.
        """
        try:
            self.fs.removetree(identifier)
        except ResourceNotFound:
            return False
        return True

    def identifiers(self) -> Iterable[str]:
        """Return generator that yields the identifier of every published
        object.
        """
        for name in self.fs.listdir("/"):
            if is_staging(name) or not u.is_identifier(name):
                continue
            if self.fs.isfile(u.sidecar_path(name)):
                yield name

    def objects(self) -> Iterable[u.ContentObject]:
        """Return generator that yields every readable published object."""
        for identifier in self.identifiers():
            try:
                yield self.load_metadata(identifier)
            except NotFound as exc:
                logger.warning("skipping %s: %s", identifier, exc)

    def size(self, identifier: Optional[str] = None) -> int:
        """Return the bytes on disk of object `identifier`, or of all
        published objects.
        """
        if identifier is None:
            return sum(self.size(i) for i in self.identifiers())

        return sum(info.size
                   for _, info in self.fs.walk.info(identifier,
                                                    namespaces=["details"])
                   if info.is_file)

    def count(self) -> int:
        """Return count of the number of published objects."""
        return sum(1 for _ in self.identifiers())

    def __contains__(self, identifier: str) -> bool:
        return self.exists(identifier)

    def __iter__(self) -> Iterable[str]:
        return self.identifiers()

    def __len__(self) -> int:
        return self.count()

    def _publish(self, staged: str, filename: str, size: int) -> u.ContentObject:
        """Hash a gzip'd staging file and move it into the content tree."""
        identifier = None
        created = False

        try:
            with self.fs.open(staged, "rb") as f:
                digest = u.computehash(f, self.algorithm)
            identifier = u.shortid(digest, self.id_length)

            with self._publish_lock:
                if self.fs.exists(identifier):
                    # Same content, or another payload with the same id.
                    logger.info("replacing existing object %s", identifier)
                    self.fs.removetree(identifier)

                self._makedirs(identifier)
                created = True
                relpath = pyfs.path.join(identifier, filename)
                self.fs.move(staged, relpath)
                logger.debug("moved to %s", relpath)

                obj = self._describe(identifier, filename, digest, size)
                self._write_sidecar(obj)
        except (OSError, EOFError, FSError, SpoolWriteFailed) as exc:
            logger.error("could not publish %s: %s", filename, exc)
            if created:
                self._discard_tree(identifier)
            raise RenameFailed(
                "Could not publish {0}: {1}".format(filename, exc)) from exc
        finally:
            self.spool.discard(staged)

        logger.info("published %s (%d bytes)", obj.relpath, size)
        if self.on_publish is not None:
            self.on_publish(obj)
        return obj

    def _describe(self,
                  identifier: str,
                  filename: str,
                  digest: str,
                  size: int) -> u.ContentObject:
        """Build the metadata record of a payload that is already in place."""
        with self.fs.open(pyfs.path.join(identifier, filename), "rb") as f, \
                gzip.GzipFile(fileobj=f, mode="rb") as gz:
            head = gz.read(HEADSIZE)

        kind = sniff(filename, head)
        return u.ContentObject(
            id=identifier,
            name=filename,
            hash=digest,
            size=size,
            content_type=kind.content_type,
            modified=datetime.now(timezone.utc),
            is_ascii=kind.is_ascii,
            is_text="text/" in kind.content_type,
            is_image="image/" in kind.content_type,
            is_audio="audio/" in kind.content_type,
            is_video="video/" in kind.content_type,
        )

    def _write_sidecar(self, obj: u.ContentObject) -> None:
        """Write the gzip'd JSON metadata next to the staging files and move
        it into the object directory.
        """
        tmp = self.spool.create()
        try:
            with self.fs.open(tmp, "wb") as f, u.gzip_writer(f) as gz:
                gz.write(json.dumps(obj.to_dict(), indent=1).encode("utf8"))
            self.fs.move(tmp, obj.sidecar)
        finally:
            self.spool.discard(tmp)

    def _discard_tree(self, identifier: str) -> None:
        try:
            self.remove(identifier)
        except FSError as exc:
            logger.warning("could not remove partial object %s: %s",
                           identifier, exc)

    def _makedirs(self, dir_path: str) -> None:
        """Physically create the folder path on disk."""
        # this is creating a directory, so we use dmode here.
        perms = Permissions.create(self.dmode)
        self.fs.makedirs(dir_path, permissions=perms, recreate=True)
