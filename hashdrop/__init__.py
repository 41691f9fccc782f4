# -*- coding: utf-8 -*-
"""HashDrop is a self-hosted, content-addressed file drop. Files are uploaded
in one go or in chunks, gzip'd, and published under a short identifier
derived from the hash of their compressed payload.

Storage stays bounded:

- Every object expires after a time-to-live that shrinks as the object grows.
- Whenever the store exceeds its capacity, the largest object is evicted.
"""

from .__meta__ import (
    __title__,
    __summary__,
    __url__,
    __version__,
    __author__,
    __email__,
    __license__,
)

from .config import Settings
from .errors import (
    HashDropError,
    NotFound,
    RenameFailed,
    SessionInvalid,
    SizeLimitExceeded,
    SpoolWriteFailed,
    StorageIOFailure,
    UploadTooLarge,
    WaitTimeout,
)
from .hashdrop import HashDrop
from .log import setup_logging
from .retention import RetentionManager, Snapshot, time_to_deletion
from .sessions import SessionTable, Submission
from .spool import TempSpool
from .store import ContentStore
from .utils import ContentObject


__all__ = (
    "HashDrop",
    "ContentStore",
    "ContentObject",
    "RetentionManager",
    "SessionTable",
    "Settings",
    "Snapshot",
    "Submission",
    "TempSpool",
    "setup_logging",
    "time_to_deletion",
    "HashDropError",
    "NotFound",
    "RenameFailed",
    "SessionInvalid",
    "SizeLimitExceeded",
    "SpoolWriteFailed",
    "StorageIOFailure",
    "UploadTooLarge",
    "WaitTimeout",
)
