"""Custom exceptions for HEIC conversion operations.

All error messages are written in plain English and only ever mention file
basenames, never server paths.
"""

from typing import Optional


class ConverterError(Exception):
    """Base exception for all conversion service errors."""

    error_type: str = "ConverterError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class InvalidInputError(ConverterError):
    """Uploaded file is missing, not a regular file, or not HEIC/HEIF."""

    error_type: str = "InvalidInputError"

    @staticmethod
    def for_file(filename: str) -> "InvalidInputError":
        return InvalidInputError(
            f"'{filename}' is not a HEIC/HEIF file. Only .heic and .heif files are allowed."
        )

    @staticmethod
    def not_a_file(filename: str) -> "InvalidInputError":
        return InvalidInputError(f"'{filename}' could not be read as an uploaded file.")


class CodecError(ConverterError):
    """Image could not be decoded or the JPEG encoder rejected it.

    User-friendly message examples:
    - "'IMG_0001.heic' could not be decoded. The file may be corrupted."
    - "'IMG_0001.heic' is not a HEIC/HEIF image (detected PNG)."
    """

    error_type: str = "CodecError"
    status_code: int = 422

    @staticmethod
    def for_file(filename: str, detail: str = "", original_error: Optional[Exception] = None) -> "CodecError":
        base_msg = f"'{filename}' could not be converted."
        if detail:
            return CodecError(f"{base_msg} Issue: {detail}", original_error=original_error)
        return CodecError(
            f"{base_msg} The file may be corrupted or use an unsupported HEIF variant.",
            original_error=original_error,
        )


class EmptyOutputError(ConverterError):
    """Encoder reported success but wrote nothing."""

    error_type: str = "EmptyOutputError"
    status_code: int = 500

    @staticmethod
    def for_file(filename: str) -> "EmptyOutputError":
        return EmptyOutputError(f"Conversion of '{filename}' produced an empty file.")


class ArchiveError(ConverterError):
    """ZIP packaging failed on disk."""

    error_type: str = "ArchiveError"
    status_code: int = 500

    @staticmethod
    def for_archive(archive_name: str, original_error: Optional[Exception] = None) -> "ArchiveError":
        return ArchiveError(
            f"Could not create archive '{archive_name}'. The converted files are still available individually.",
            original_error=original_error,
        )


class AuthError(ConverterError):
    """Missing or invalid API key or admin token."""

    error_type: str = "AuthError"
    status_code: int = 401

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ConverterError):
    """Client exhausted its request window."""

    error_type: str = "RateLimitError"
    status_code: int = 429

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))


class ValidationError(ConverterError):
    """Malformed request: no files, too many files, bad JSON body."""

    error_type: str = "ValidationError"

    @staticmethod
    def too_many_files(count: int, limit: int) -> "ValidationError":
        return ValidationError(f"Too many files: {count} uploaded (limit {limit} per request).")


class PayloadTooLargeError(ConverterError):
    """Per-file or JSON body ceiling exceeded."""

    error_type: str = "FileTooLarge"
    status_code: int = 413

    @staticmethod
    def for_file(filename: str, size_mb: float, limit_mb: float) -> "PayloadTooLargeError":
        return PayloadTooLargeError(
            f"'{filename}' is too large: {size_mb:.1f}MB (limit {limit_mb:.0f}MB)"
        )
