"""Module for RetentionManager class."""

import logging
import threading
from collections import namedtuple
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fs.errors import FSError, ResourceNotFound

from .errors import NotFound
from .sessions import SessionTable
from .spool import is_staging
from .store import ContentStore
from .utils import ContentObject

logger = logging.getLogger(__name__)

#: Reference size for ``minutes_per_gigabyte``.
GIGABYTE = 1000 * 1000 * 1000


class Snapshot(namedtuple("Snapshot", ["total", "largest"])):
    """Bytes held by all published objects and the id of the largest one."""
    pass


def time_to_deletion(size: int, minutes_per_gigabyte: float) -> timedelta:
    """Return how long an object of `size` bytes is kept.

    A gigabyte is kept for `minutes_per_gigabyte` minutes, and the time scales
    inversely with size. Sizes below one byte count as one byte.
    """
    return timedelta(minutes=minutes_per_gigabyte * GIGABYTE / max(size, 1))


class RetentionManager(object):
    """Keeps a :class:`ContentStore` bounded.

    Two policies apply to published objects only:

    - :meth:`sweep` deletes every object older than its size scaled
      time-to-live, and cleans up stale staging files and sessions.
    - :meth:`trim` evicts the largest object until the store holds at most
      :attr:`max_bytes_total` bytes.

    :meth:`start` runs a sweep at startup and then every
    :attr:`sweep_interval` seconds on a daemon thread; :meth:`schedule_trim`
    runs a trim on a worker thread and is meant as the store's
    ``on_publish`` hook.

    Attributes:
        store (ContentStore): Store to police.
        max_bytes_total (int): Capacity ceiling in bytes.
        minutes_per_gigabyte (float): Time-to-live of a one gigabyte object.
        sweep_interval (float): Seconds between sweeps.
        stale_after (float): Seconds after which staging files and idle
            sessions are abandoned. Defaults to :attr:`sweep_interval`.
        max_passes (int): Evictions allowed per trim.
        sessions (SessionTable, optional): Sessions to expire during sweeps.
    """

    def __init__(self,
                 store: ContentStore,
                 max_bytes_total: int,
                 minutes_per_gigabyte: float = 30,
                 sweep_interval: float = 30 * 60,
                 stale_after: Optional[float] = None,
                 max_passes: int = 30,
                 sessions: Optional[SessionTable] = None):
        self.store = store
        self.max_bytes_total = max_bytes_total
        self.minutes_per_gigabyte = minutes_per_gigabyte
        self.sweep_interval = sweep_interval
        self.stale_after = sweep_interval if stale_after is None else stale_after
        self.max_passes = max_passes
        self.sessions = sessions

        self._trim_lock = threading.Lock()
        self._stopped = threading.Event()
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def ttl(self, obj: ContentObject) -> timedelta:
        """Time-to-live of `obj`."""
        return time_to_deletion(obj.size, self.minutes_per_gigabyte)

    def is_expired(self, obj: ContentObject, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - obj.modified >= self.ttl(obj)

    def sweep(self, now: Optional[datetime] = None, remove_temp: bool = False) -> List[str]:
        """Delete expired objects.

        Args:
            now: Time to judge ages against. Defaults to the current time.
            remove_temp: Remove every staging file regardless of age, as done
                at startup.

        Returns:
            Identifiers of the deleted objects.
        """
        now = now or datetime.now(timezone.utc)
        self._purge_staging(now, remove_temp)

        if self.sessions is not None:
            for path in self.sessions.expire(self.stale_after):
                self.store.spool.discard(path)

        deleted = []
        try:
            identifiers = list(self.store.identifiers())
        except FSError as exc:
            logger.error("could not list %s: %s", self.store.fs, exc)
            return deleted

        logger.debug("found %d objects", len(identifiers))

        for identifier in identifiers:
            try:
                obj = self.store.load_metadata(identifier)
            except NotFound as exc:
                logger.debug("skipping %s: %s", identifier, exc)
                continue

            age = now - obj.modified
            if not self.is_expired(obj, now):
                logger.debug("skipping %s: not old enough (%s < %s)",
                             identifier, age, self.ttl(obj))
                continue

            try:
                self.store.remove(identifier)
            except FSError as exc:
                logger.error("could not delete %s: %s", identifier, exc)
                continue

            logger.info("expired %s (%d bytes, %s old)", identifier, obj.size, age)
            deleted.append(identifier)

        return deleted

    def snapshot(self) -> Snapshot:
        """Measure the published objects on disk."""
        total = 0
        largest = None
        largest_size = -1

        for identifier in self.store.identifiers():
            try:
                size = self.store.size(identifier)
            except ResourceNotFound:
                # Deleted while walking.
                continue
            total += size
            if size > largest_size:
                largest, largest_size = identifier, size

        return Snapshot(total, largest)

    def trim(self) -> List[str]:
        """Evict the largest object until the store fits
        :attr:`max_bytes_total`, at most :attr:`max_passes` times.

        Returns:
            Identifiers of the evicted objects.
        """
        evicted = []

        with self._trim_lock:
            for _ in range(self.max_passes):
                try:
                    snapshot = self.snapshot()
                except FSError as exc:
                    logger.error("could not measure %s: %s", self.store.fs, exc)
                    break

                if snapshot.total <= self.max_bytes_total or snapshot.largest is None:
                    break

                logger.debug("bytes in directory exceeds max %d > %d",
                             snapshot.total, self.max_bytes_total)
                try:
                    self.store.remove(snapshot.largest)
                except FSError as exc:
                    logger.error("could not evict %s: %s", snapshot.largest, exc)
                    break

                logger.info("evicted %s", snapshot.largest)
                evicted.append(snapshot.largest)

        return evicted

    def schedule_trim(self, obj: Optional[ContentObject] = None) -> Optional[Future]:
        """Run :meth:`trim` on the worker thread without waiting for it.

        Nothing is scheduled after :meth:`stop` until :meth:`start` is called
        again, and ``None`` is returned.
        """
        if self._closed:
            logger.debug("not trimming, retention is stopped")
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="hashdrop-trim")
        future = self._executor.submit(self.trim)
        future.add_done_callback(_log_failure)
        return future

    def start(self) -> None:
        """Start the periodic sweep thread."""
        self._closed = False
        if self._thread is not None:
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run, name="hashdrop-sweep", daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True) -> None:
        """Stop the sweep thread and the trim worker."""
        self._closed = True
        self._stopped.set()
        if self._thread is not None:
            if wait:
                self._thread.join()
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _run(self) -> None:
        self._guarded(lambda: self.sweep(remove_temp=True))
        self._guarded(self.trim)
        while not self._stopped.wait(self.sweep_interval):
            self._guarded(self.sweep)

    def _guarded(self, task) -> None:
        try:
            task()
        except Exception:
            logger.exception("retention pass failed")

    def _purge_staging(self, now: datetime, remove_all: bool) -> None:
        """Remove staging files left over by crashed or abandoned uploads.
        Chunks of live sessions are kept unless `remove_all` is set.
        """
        cutoff = now - timedelta(seconds=self.stale_after)
        live = set()
        if not remove_all and self.sessions is not None:
            live = self.sessions.live_paths()
        try:
            entries = list(self.store.fs.scandir("/", namespaces=["details"]))
        except FSError as exc:
            logger.error("could not scan %s: %s", self.store.fs, exc)
            return

        for info in entries:
            if not info.is_file or not is_staging(info.name):
                continue
            if "/" + info.name in live:
                continue
            if remove_all or (info.modified is not None and info.modified <= cutoff):
                logger.debug("removing staging file %s", info.name)
                self.store.spool.discard("/" + info.name)


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("capacity trim failed: %s", exc)
