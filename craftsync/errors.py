class CraftSyncError(Exception):
    """Base class for every error raised by craftsync."""


class MigrationError(CraftSyncError):
    """A schema migration step failed. Startup must not continue."""

    def __init__(self, version: int, message: str):
        self.version = version
        super().__init__(f"Migration v{version} failed: {message}")


class SchemaNotReadyError(CraftSyncError):
    """The local store was used before migrations completed."""


class CodecError(CraftSyncError, ValueError):
    """A composite field could not be encoded or decoded."""


class RemoteStoreError(CraftSyncError):
    """A call to the remote store failed."""


class RemoteNotConfiguredError(RemoteStoreError):
    pass


class RemoteUnavailableError(RemoteStoreError):
    """Transport failure or 5xx, still failing after the last retry."""


class RemoteAuthorizationError(RemoteStoreError):
    """The remote access control refused the caller."""


class RemoteRejectedError(RemoteStoreError):
    """The remote refused a single record (validation, conflict, ...)."""
