from __future__ import annotations


class AbroadError(Exception):
    """Base error for all user-facing abroaddesk exceptions."""


class ConfigurationError(AbroadError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(AbroadError):
    """Raised when the .abroad data directory is missing."""


class ValidationError(AbroadError):
    """Raised when a submitted payload breaks an entity's field rules."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class NotFoundError(AbroadError):
    """Raised when a referenced record does not exist."""


class MediaNotFoundError(NotFoundError):
    """Raised when a media asset is missing from its bucket."""


class StorageError(AbroadError):
    """Raised when a document or media store primary operation fails."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def details(self) -> str | None:
        if self.cause is None:
            return None
        return str(self.cause) or type(self.cause).__name__


class AccessDeniedError(AbroadError):
    """Raised when a signed media URL is invalid or has expired."""
