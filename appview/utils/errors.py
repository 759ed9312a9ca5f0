"""Error handling utilities."""


class AppViewError(Exception):
    """Base exception for the marketplace AppView."""
    pass


class ValidationError(AppViewError):
    """Caller-supplied input failed a precondition."""
    pass


class StorageError(AppViewError):
    """Catalog store operation error."""
    pass


class StorageReadError(StorageError):
    """Catalog store unreachable or returned malformed data on read."""
    pass


class StorageWriteError(StorageError):
    """A primary or index write failed."""
    pass


class InternalError(AppViewError):
    """Query could not be answered; no partial result is returned."""
    pass


class RepoClientError(AppViewError):
    """Author repository (PDS) request failed."""
    pass


class PerIdentityFetchError(RepoClientError):
    """Fetching one identity's listings failed during aggregation."""

    def __init__(self, did: str, reason: str):
        self.did = did
        self.reason = reason
        super().__init__(f"Failed to fetch listings for {did}: {reason}")


class NoKnownUsersError(AppViewError):
    """Aggregation requested with no identities to query."""
    pass
