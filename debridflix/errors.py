"""Error taxonomy shared by providers, the search pipeline and download resolution."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classified provider failure. Values double as fallback video names."""

    NOT_READY = "not_ready"
    EXPIRED_API_KEY = "expired_api_key"
    NOT_PREMIUM = "not_premium"
    ACCESS_DENIED = "access_denied"
    TWO_FACTOR_AUTH = "two_factor_auth"


class DebridflixError(Exception):
    """Base class for every error raised on purpose by debridflix."""


class DebridError(DebridflixError):
    """Classified failure reported by a debrid provider."""

    kind: ErrorKind = ErrorKind.NOT_READY

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind.value)


class NotReadyError(DebridError):
    kind = ErrorKind.NOT_READY


class ExpiredCredentialError(DebridError):
    kind = ErrorKind.EXPIRED_API_KEY


class NotPremiumError(DebridError):
    kind = ErrorKind.NOT_PREMIUM


class AccessDeniedError(DebridError):
    kind = ErrorKind.ACCESS_DENIED


class TwoFactorRequiredError(DebridError):
    kind = ErrorKind.TWO_FACTOR_AUTH


_ERRORS_BY_KIND: dict[ErrorKind, type[DebridError]] = {
    cls.kind: cls
    for cls in (
        NotReadyError,
        ExpiredCredentialError,
        NotPremiumError,
        AccessDeniedError,
        TwoFactorRequiredError,
    )
}


def error_for_kind(kind: ErrorKind, message: str | None = None) -> DebridError:
    return _ERRORS_BY_KIND[kind](message)


class UnsupportedProviderApiError(DebridflixError):
    """Raised by providers that can only be reached through the StremThru gateway."""


class UnknownProviderError(DebridflixError, LookupError):
    pass


class UnsupportedTypeError(DebridflixError, ValueError):
    pass


class NoIndexerConfiguredError(DebridflixError):
    pass


class NoTorrentInfosError(DebridflixError):
    pass


class NoDownloadAvailableError(DebridflixError):
    pass


class InvalidPasskeyError(DebridflixError, ValueError):
    pass


class ConfigError(DebridflixError, ValueError):
    pass
