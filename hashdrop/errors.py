"""Exceptions raised by hashdrop."""


class HashDropError(Exception):
    """Base exception for hashdrop."""
    pass


class SizeLimitExceeded(HashDropError):
    """Raised when a stream or upload breaches a byte ceiling."""
    pass


class UploadTooLarge(SizeLimitExceeded):
    """Raised when a chunked upload declares more bytes than a file may hold."""
    pass


class SessionInvalid(HashDropError):
    """Raised when a chunk does not fit the session it claims to belong to."""
    pass


class StorageIOFailure(HashDropError):
    """Raised when the filesystem fails while staging or publishing."""
    pass


class SpoolWriteFailed(StorageIOFailure):
    """Raised when writing a staging file fails."""
    pass


class RenameFailed(StorageIOFailure):
    """Raised when an object cannot be moved into place."""
    pass


class NotFound(HashDropError, LookupError):
    """Raised when an identifier has no published object."""
    pass


class WaitTimeout(HashDropError, TimeoutError):
    """Raised when a session does not finish within the allowed wait."""
    pass
