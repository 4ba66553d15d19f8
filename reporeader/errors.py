# reporeader/errors.py

from typing import Optional


class RepoReaderError(Exception):
    """Base class for every error raised by the reporeader core."""


class CloneError(RepoReaderError):
    """The remote repository could not be fetched."""


class PolicyError(RepoReaderError):
    """The request violates a service policy (e.g. repository too large)."""

    def __init__(self, code: str, message: str, file_count: Optional[int] = None, limit: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.file_count = file_count
        self.limit = limit


class ProviderError(RepoReaderError):
    """An external embedding/generation provider failed."""


class ProviderTransient(ProviderError):
    """Retryable provider signal (model loading, overload, rate limit)."""


class ProviderFatal(ProviderError):
    """Non-retryable provider error."""


class ProviderUnavailable(ProviderError):
    """The provider kept failing after every allowed attempt."""


class StorageError(RepoReaderError):
    """Persistence failure."""


class InvalidTransition(RepoReaderError):
    """A repository status change that would move backwards."""


class RepositoryNotFound(RepoReaderError):
    pass
