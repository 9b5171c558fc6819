"""Exceptions raised while synchronising estimates."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every synchronisation failure."""


class AuthError(SyncError):
    """The refresh credential could not be exchanged for an access token."""


class DirectoryLoadError(SyncError):
    """The rep directory could not be read from the local store."""


class PageFetchError(SyncError):
    """One page of the estimate listing could not be fetched."""

    def __init__(self, office: str, page: int, detail: str) -> None:
        super().__init__(f"{office} p.{page}: {detail}")
        self.office = office
        self.page = page
        self.detail = detail


class ValidationError(SyncError):
    """A webhook payload is incomplete or references unknown data."""

    def __init__(
        self,
        message: str,
        *,
        missing: list[str] | None = None,
        value: str | None = None,
    ) -> None:
        super().__init__(message)
        self.missing = missing or []
        self.value = value


class WriteError(SyncError):
    """The local store rejected a batch."""


__all__ = [
    "AuthError",
    "DirectoryLoadError",
    "PageFetchError",
    "SyncError",
    "ValidationError",
    "WriteError",
]
