"""Error taxonomy shared by converters, the batch pipeline and the HTTP layer."""

from __future__ import annotations


class NoteConverterError(RuntimeError):
    """Base class for every error the converter raises on purpose."""

    code = "INTERNAL"
    status_code = 500

    def __init__(
        self, message: str, *, code: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(NoteConverterError):
    code = "VALIDATION"
    status_code = 400


class ConversionError(NoteConverterError):
    code = "CONVERSION_FAILED"
    status_code = 422


class AuthenticationError(NoteConverterError):
    code = "UNAUTHORIZED"
    status_code = 401


class ResourceError(NoteConverterError):
    code = "RESOURCE"
    status_code = 400


class ConfigurationError(NoteConverterError):
    code = "NO_CONVERTER"
    status_code = 500


class InternalError(NoteConverterError):
    code = "INTERNAL"
    status_code = 500


class JobCanceledError(NoteConverterError):
    code = "CANCELED"
    status_code = 409


def describe_error(exc: BaseException) -> tuple[str, str]:
    """Return the ``(code, message)`` pair reported to clients for *exc*."""

    if isinstance(exc, NoteConverterError):
        return exc.code, str(exc)
    message = str(exc) or exc.__class__.__name__
    return InternalError.code, message


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ConversionError",
    "InternalError",
    "JobCanceledError",
    "NoteConverterError",
    "ResourceError",
    "ValidationError",
    "describe_error",
]
