"""Shared exception types for changekeeper."""


class ChangekeeperError(Exception):
    """Base exception for all changekeeper errors."""


class ConfigError(ChangekeeperError):
    """Configuration is invalid or missing."""


class StorageError(ChangekeeperError):
    """Persistent storage error."""


class VcsError(ChangekeeperError):
    """A read from the version-control collaborator failed."""


class ValidationError(ChangekeeperError):
    """A request was rejected before any state was touched."""


class DuplicateNameError(ValidationError):
    """Another changelist already uses this name."""


class InvalidNameError(ValidationError):
    """Changelist name is empty."""


class NoFilesSelectedError(ValidationError):
    """Operation needs at least one file."""


class EmptyMessageError(ValidationError):
    """Commit message is empty."""
