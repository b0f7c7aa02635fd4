"""Error types raised while signing packages with a remote key."""

from __future__ import annotations


class KvSignError(Exception):
    """Base class for all kvsign failures."""

    pass


class ArgumentError(KvSignError, ValueError):
    """Raised when signing options are invalid (bad signature type, missing repository fields)."""

    pass


class AuthenticationError(KvSignError):
    """Raised when a bearer token for the key vault cannot be obtained."""

    pass


class SigningServiceError(KvSignError):
    """Raised when the key vault rejects a certificate lookup or a sign request."""

    pass


class TimestampError(KvSignError):
    """Raised when the timestamp authority is unreachable or rejects the request."""

    pass


class FileSystemError(KvSignError):
    """Raised when the working copy of a package cannot be staged."""

    pass


class CleanupError(KvSignError):
    """Raised when a working copy cannot be removed."""

    pass


class PackageSigningError(KvSignError):
    """Raised by the package signing engine when a package cannot be signed."""

    pass
