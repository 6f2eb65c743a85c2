"""Error taxonomy for artifact acquisition and symbol resolution.

Every error carries a stable ``code`` so that structured results crossing
the CLI boundary have a machine-readable cause, not just a message.
"""

from __future__ import annotations


class BcdevError(RuntimeError):
    """Base class for all bcdev domain errors."""

    code: str = "BcdevError"


# ---------------------------------------------------------------------------
# Version index
# ---------------------------------------------------------------------------


class IndexUnavailable(BcdevError):
    """Raised when the release index cannot be fetched or parsed."""

    code = "IndexUnavailable"


class NoMatchingRelease(BcdevError):
    """Raised when no published release matches a coarse version."""

    code = "NoMatchingRelease"


# ---------------------------------------------------------------------------
# Partial archive acquisition
# ---------------------------------------------------------------------------


class RangeUnsupported(BcdevError):
    """Raised when a server does not advertise byte ranges and a length."""

    code = "RangeUnsupported"


class UnexpectedRangeResponse(BcdevError):
    """Raised when a ranged GET does not answer 206 Partial Content."""

    code = "UnexpectedRangeResponse"


class DownloadFailed(BcdevError):
    """Raised when an archive request fails at the transport or HTTP level."""

    code = "DownloadFailed"


class Zip64NotSupported(BcdevError):
    """Raised when the end-of-central-directory record carries ZIP64 sentinels."""

    code = "Zip64NotSupported"


class ArchiveFormatError(BcdevError):
    """Raised when archive bytes do not have the expected structure."""

    code = "ArchiveFormatError"


class UnsupportedCompressionMethod(BcdevError):
    """Raised for entries that are neither stored nor deflated."""

    code = "UnsupportedCompressionMethod"


class CorruptEntryError(BcdevError):
    """Raised when an extracted entry fails its CRC-32 or size check."""

    code = "CorruptEntryError"


class ExecutableNotFoundInArchive(BcdevError):
    """Raised when the platform subtree did not yield the compiler executable."""

    code = "ExecutableNotFoundInArchive"


class UnsupportedPlatform(BcdevError):
    """Raised when the running OS has no compiler build."""

    code = "UnsupportedPlatform"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class NotCached(BcdevError, FileNotFoundError):
    """Raised when a file is requested from a cache entry that is not ready."""

    code = "NotCached"


class CacheLockTimeout(BcdevError):
    """Raised when the per-version cache lock could not be acquired in time."""

    code = "CacheLockTimeout"


class OperationCancelled(BcdevError):
    """Raised when a deadline expires or the caller cancels an operation."""

    code = "OperationCancelled"


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


class ManifestError(BcdevError):
    """Raised when an app.json manifest is missing or malformed."""

    code = "ManifestError"


class NoCompatibleVersion(BcdevError):
    """Raised when no feed version satisfies the requested version."""

    code = "NoCompatibleVersion"


class PayloadNotFoundInPackage(BcdevError):
    """Raised when a downloaded package has no payload file."""

    code = "PayloadNotFoundInPackage"


class AmbiguousPayloadInPackage(BcdevError):
    """Raised when a downloaded package has more than one payload file."""

    code = "AmbiguousPayloadInPackage"


class PackageNotFound(BcdevError):
    """Raised when a package is absent from every configured feed."""

    code = "PackageNotFound"


class FeedNetworkError(BcdevError):
    """Raised when a feed request fails for a reason other than 404."""

    code = "FeedNetworkError"


def error_code(exc: BaseException) -> str:
    """Return the taxonomy code for *exc*, or its class name for foreign errors."""
    if isinstance(exc, BcdevError):
        return exc.code
    return type(exc).__name__
