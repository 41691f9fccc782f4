"""Module for SessionTable class."""

import logging
import threading
import time
from collections import namedtuple
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Optional, Set

from .errors import SessionInvalid, UploadTooLarge, WaitTimeout
from .utils import ContentObject

logger = logging.getLogger(__name__)


class Submission(namedtuple("Submission", ["ready", "paths", "filename"])):
    """Outcome of :meth:`SessionTable.submit_chunk`.

    When ``ready`` is true the caller owns ``paths``, the staged chunk files
    ordered by chunk index, and must finalize them.
    """
    pass


class Session(object):
    """Bookkeeping of one chunked upload."""

    def __init__(self, total: int, filename: Optional[str], now: float):
        self.total = total
        self.received = 0
        self.chunks: Dict[int, str] = {}
        self.filename = filename
        self.touched = now

    def ordered(self) -> List[str]:
        return [self.chunks[i] for i in sorted(self.chunks)]


class _Notice(object):
    """Completion signal for a session token."""

    def __init__(self, now: float):
        self.future: Future = Future()
        self.since = now
        self.closed = False


class SessionTable(object):
    """Tracks in-flight chunked uploads.

    Every read-modify-write of the tables happens under one lock, so of all
    the concurrent submissions for a session exactly one sees it complete.
    That submission receives the staged chunk paths and finalizes them
    outside the lock; everybody else waits on :meth:`wait`.

    Attributes:
        max_bytes_per_file (int): Ceiling on ``total_chunks * chunk_size``.
        max_wait (float): Default seconds :meth:`wait` blocks for.
    """

    def __init__(self,
                 max_bytes_per_file: int,
                 max_wait: float = 60 * 60,
                 clock: Callable[[], float] = time.monotonic):
        self.max_bytes_per_file = max_bytes_per_file
        self.max_wait = max_wait
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._notices: Dict[str, _Notice] = {}

    def admit(self, token: str, total_chunks: int, chunk_size: int) -> None:
        """Check a chunk's declared upload size before any data is staged.

        The check runs once per session: tokens with a live session pass.

        Raises:
            UploadTooLarge: If ``total_chunks * chunk_size`` exceeds
                :attr:`max_bytes_per_file`.
            SessionInvalid: If the token already finalized or the counts are
                nonsense.
        """
        with self._lock:
            if token in self._sessions:
                return
            self._check_open(token)

        if total_chunks < 1 or chunk_size < 0:
            raise SessionInvalid(
                "Invalid chunk layout {0} x {1}.".format(total_chunks, chunk_size))

        if total_chunks * chunk_size > self.max_bytes_per_file:
            raise UploadTooLarge(
                "Upload exceeds max file size: {0} bytes.".format(
                    self.max_bytes_per_file))

    def submit_chunk(self,
                     token: str,
                     index: int,
                     total_chunks: int,
                     path: str,
                     filename: Optional[str] = None) -> Submission:
        """Record staged chunk `index` (1-based) of session `token`.

        Raises:
            SessionInvalid: If the session already finalized, the index is out
                of range or already received, or `total_chunks` disagrees with
                the session.
        """
        with self._lock:
            self._check_open(token)
            session = self._sessions.get(token)
            total = session.total if session else total_chunks

            if total_chunks != total:
                raise SessionInvalid(
                    "Session {0} expects {1} chunks, not {2}.".format(
                        token, total, total_chunks))
            if not 1 <= index <= total:
                raise SessionInvalid(
                    "Chunk {0} is out of range 1..{1}.".format(index, total))
            if session and index in session.chunks:
                raise SessionInvalid(
                    "Chunk {0} of session {1} already received.".format(
                        index, token))

            now = self._clock()
            if session is None:
                notice = self._notices.get(token)
                if notice is not None and notice.future.done():
                    # Retry of a session whose finalization failed.
                    del self._notices[token]
                session = Session(total, filename, now)
                self._sessions[token] = session

            session.chunks[index] = path
            session.received += 1
            session.touched = now
            logger.debug("chunk %d/%d for %s", session.received, total, token)

            if session.received < session.total:
                return Submission(False, (), session.filename)

            del self._sessions[token]
            notice = self._notice(token)
            notice.closed = True
            notice.since = now

        logger.debug("upload finished for %s", token)
        return Submission(True, tuple(session.ordered()), session.filename)

    def remove_session(self, token: str) -> List[str]:
        """Drop a live session and return its staged paths."""
        with self._lock:
            session = self._sessions.pop(token, None)
        return session.ordered() if session else []

    def resolve(self, token: str, obj: ContentObject) -> None:
        """Report the published object of a finalized session to waiters."""
        with self._lock:
            notice = self._notice(token)
        notice.future.set_result(obj)

    def fail(self, token: str, exc: BaseException) -> None:
        """Report a failed finalization to waiters and reopen the token, so
        the client may upload the session again.
        """
        with self._lock:
            notice = self._notice(token)
            notice.closed = False
        notice.future.set_exception(exc)

    def live_paths(self) -> Set[str]:
        """Return the staged paths held by live sessions."""
        with self._lock:
            return {path
                    for session in self._sessions.values()
                    for path in session.chunks.values()}

    def wait(self, token: str, timeout: Optional[float] = None) -> ContentObject:
        """Block until session `token` is published.

        Raises:
            SessionInvalid: If `token` has neither a live session nor a
                finished one on record.
            WaitTimeout: If nothing was published within `timeout` seconds
                (default :attr:`max_wait`).
        """
        if timeout is None:
            timeout = self.max_wait

        with self._lock:
            if token not in self._sessions and token not in self._notices:
                raise SessionInvalid("Unknown session {0}.".format(token))
            notice = self._notice(token)

        try:
            return notice.future.result(timeout=timeout)
        except FutureTimeout as exc:
            raise WaitTimeout(
                "Session {0} did not finish within {1}s.".format(
                    token, timeout)) from exc

    def expire(self, max_age: float) -> List[str]:
        """Forget sessions idle and notices kept for longer than `max_age`
        seconds. Waiters of forgotten sessions fail with
        :class:`SessionInvalid`.

        Returns:
            Staged paths of the dropped sessions.
        """
        cutoff = self._clock() - max_age
        paths = []
        abandoned = []

        with self._lock:
            for token, session in list(self._sessions.items()):
                if session.touched < cutoff:
                    del self._sessions[token]
                    paths.extend(session.ordered())
                    logger.debug("expired session %s", token)

            for token, notice in list(self._notices.items()):
                if token in self._sessions or notice.since >= cutoff:
                    continue
                if notice.closed and not notice.future.done():
                    # Still finalizing.
                    continue
                del self._notices[token]
                if not notice.future.done():
                    abandoned.append((token, notice))

        for token, notice in abandoned:
            notice.future.set_exception(
                SessionInvalid("Session {0} expired.".format(token)))

        return paths

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _notice(self, token: str) -> _Notice:
        notice = self._notices.get(token)
        if notice is None:
            notice = self._notices[token] = _Notice(self._clock())
        return notice

    def _check_open(self, token: str) -> None:
        notice = self._notices.get(token)
        if notice is not None and notice.closed:
            raise SessionInvalid(
                "Session {0} is already finalized.".format(token))
