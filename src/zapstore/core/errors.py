"""Zapstore · Unified Error Hierarchy.

All custom exceptions inherit from ZapstoreError, which carries an
error_code, an optional details dict and the process exit code the CLI
reports for it.

Usage::

    from zapstore.core.errors import IntegrityMismatch, LookupEmpty

    raise LookupEmpty("No apps found for foo", details={"term": "foo"})
    raise IntegrityMismatch("Hash mismatch", details={"expected": x, "actual": y})
"""

from __future__ import annotations


class ZapstoreError(Exception):
    """Base exception for all Zapstore errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        error_code: str = "ZAPSTORE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class LookupEmpty(ZapstoreError):
    """No application, release or file-metadata record for this platform.

    Reported to the user; the process still ends cleanly.
    """

    exit_code = 0

    def __init__(
        self,
        message: str,
        error_code: str = "LOOKUP_EMPTY",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class ValidationFailure(ZapstoreError):
    """Malformed or badly signed catalog record. Aborts before any download."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_FAILURE",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class DownloadError(ZapstoreError):
    """Network failure while streaming an artifact. Nothing was mutated."""

    def __init__(
        self,
        message: str,
        error_code: str = "DOWNLOAD_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class IntegrityMismatch(ZapstoreError):
    """Content hash of the downloaded artifact disagrees with the catalog."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTEGRITY_MISMATCH",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class UserDeclined(ZapstoreError):
    """The user answered a downgrade, trust or removal prompt with no."""

    exit_code = 0

    def __init__(
        self,
        message: str,
        error_code: str = "USER_DECLINED",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class FilesystemFailure(ZapstoreError):
    """Move, permission or pointer-swap failure inside the store."""

    def __init__(
        self,
        message: str,
        error_code: str = "FILESYSTEM_FAILURE",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class NotInstalled(ZapstoreError):
    """Operation on an application that has no artifact in the store."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_INSTALLED",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
