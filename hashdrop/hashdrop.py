"""Module for HashDrop class."""

from typing import BinaryIO, ContextManager, Optional, Union

import fs as pyfs

import hashdrop.utils as u
from .config import Settings
from .errors import SessionInvalid
from .retention import RetentionManager
from .sessions import SessionTable
from .store import ContentStore


class HashDrop(object):
    """Content addressed file drop.

    Accepts single-shot and chunked uploads, publishes them into a
    :class:`ContentStore` and keeps the store bounded with a
    :class:`RetentionManager`.

    Attributes:
        store (ContentStore): Published objects.
        sessions (SessionTable): In-flight chunked uploads.
        retention (RetentionManager): Expiry and capacity policies.
        max_bytes_per_file (int): Ceiling on any single upload.
    """

    def __init__(self,
                 root: Union[pyfs.base.FS, str],
                 max_bytes_per_file: int = 100000000,
                 max_bytes_total: int = 10000000000,
                 minutes_per_gigabyte: float = 30,
                 sweep_interval: float = 30 * 60,
                 max_wait: float = 60 * 60,
                 max_trim_passes: int = 30,
                 algorithm: str = "sha256",
                 id_length: int = 6):
        self.max_bytes_per_file = max_bytes_per_file
        self.sessions = SessionTable(max_bytes_per_file, max_wait=max_wait)
        self.store = ContentStore(root, algorithm=algorithm, id_length=id_length)
        self.retention = RetentionManager(self.store,
                                          max_bytes_total,
                                          minutes_per_gigabyte=minutes_per_gigabyte,
                                          sweep_interval=sweep_interval,
                                          max_passes=max_trim_passes,
                                          sessions=self.sessions)
        self.store.on_publish = self.retention.schedule_trim

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "HashDrop":
        """Build a drop from :class:`Settings`, read from the environment when
        not given.
        """
        settings = settings or Settings()
        return cls(settings.CONTENT_DIRECTORY,
                   max_bytes_per_file=settings.MAX_BYTES_PER_FILE,
                   max_bytes_total=settings.MAX_BYTES_TOTAL,
                   minutes_per_gigabyte=settings.MINUTES_PER_GIGABYTE,
                   sweep_interval=settings.sweep_interval_seconds,
                   max_wait=settings.MAX_WAIT_SECONDS,
                   max_trim_passes=settings.MAX_TRIM_PASSES,
                   algorithm=settings.HASH_ALGORITHM,
                   id_length=settings.ID_LENGTH)

    def put(self, src: BinaryIO, filename: str) -> u.ContentObject:
        """Store the contents of `src` under `filename` in one go.

        Raises:
            SizeLimitExceeded: If `src` holds :attr:`max_bytes_per_file` bytes
                or more. Nothing is published.
        """
        filename = u.basename(filename)
        staged, size = self.store.spool.write(src, self.max_bytes_per_file,
                                              compress=True)
        return self.store.publish_single_shot(staged, filename, size)

    def put_chunk(self,
                  src: BinaryIO,
                  token: str,
                  index: int,
                  total_chunks: int,
                  chunk_size: int,
                  filename: str,
                  wait: bool = False) -> Optional[u.ContentObject]:
        """Store chunk `index` (1-based) of the upload session `token`.

        The submission completing the session assembles and publishes the
        upload before returning. If that fails, waiters see the error and the
        token may be used again to upload the session from scratch.

        Args:
            src: Readable object holding the chunk.
            token: Client chosen session token.
            index: Position of this chunk, ``1..total_chunks``.
            total_chunks: Number of chunks in the upload.
            chunk_size: Declared size of a chunk, used to bound the upload
                before anything is staged.
            filename: Name to publish the upload under.
            wait: Block until the session is published even when this was
                not its last chunk.

        Returns:
            The published object if this call completed the session or waited
            for it, else ``None``.

        Raises:
            UploadTooLarge: If ``total_chunks * chunk_size`` is more than
                :attr:`max_bytes_per_file`.
            SessionInvalid: If the chunk does not fit its session.
            WaitTimeout: If `wait` is set and the session does not finish in
                time.
        """
        filename = u.basename(filename)
        self.sessions.admit(token, total_chunks, chunk_size)
        staged, _ = self.store.spool.write(src, self.max_bytes_per_file)

        try:
            submission = self.sessions.submit_chunk(token, index, total_chunks,
                                                    staged, filename)
        except SessionInvalid:
            self.store.spool.discard(staged)
            raise

        if not submission.ready:
            return self.sessions.wait(token) if wait else None

        try:
            obj = self.store.finalize(submission.paths, submission.filename)
        except Exception as exc:
            self.sessions.fail(token, exc)
            raise

        self.sessions.resolve(token, obj)
        return obj

    def wait(self, token: str, timeout: Optional[float] = None) -> u.ContentObject:
        """Block until session `token` is published; see
        :meth:`SessionTable.wait`.
        """
        return self.sessions.wait(token, timeout)

    def get(self, identifier: str) -> u.ContentObject:
        """Return the metadata of `identifier`.

        Raises:
            NotFound: If there is no such object.
        """
        return self.store.load_metadata(identifier)

    def open(self, identifier: str, decompress: bool = False) -> ContextManager[BinaryIO]:
        """Open the payload of `identifier`; see :meth:`ContentStore.open`."""
        return self.store.open(identifier, decompress)

    def exists(self, identifier: str, filename: Optional[str] = None) -> bool:
        return self.store.exists(identifier, filename)

    def delete(self, identifier: str) -> None:
        self.store.delete(identifier)

    def start(self) -> None:
        """Start background retention."""
        self.retention.start()

    def close(self) -> None:
        """Stop background retention, waiting for running passes. Uploads
        published afterwards do not trigger capacity trims.
        """
        self.retention.stop()

    def __enter__(self) -> "HashDrop":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __contains__(self, identifier: str) -> bool:
        return self.store.exists(identifier)

    def __len__(self) -> int:
        return len(self.store)
