"""Exception hierarchy for Goaly.

Programmer errors (bad version strings handed to the comparator) and
rejected imports are ``ValueError`` subclasses so callers can keep catching
the builtin. Remote failures share ``RemoteStoreError`` so the sync
orchestrator can report them without knowing the transport.
"""


class GoalyError(Exception):
    """Base class for every error raised by Goaly."""


class InvalidVersionError(GoalyError, ValueError):
    """A version string is not in MAJOR.MINOR.PATCH form."""

    def __init__(self, version):
        super().__init__(f"Invalid version format: {version!r}")
        self.version = version


class ImportValidationError(GoalyError, ValueError):
    """Imported or downloaded data cannot be applied.

    Raised for unknown or newer schema versions, non-object payloads and
    migrations that did not reach the current version.
    """


class RemoteStoreError(GoalyError):
    """A request to the remote document store failed."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DocumentNotFoundError(RemoteStoreError):
    """The remote container holds no Goaly document yet."""


class AuthenticationError(RemoteStoreError):
    """No usable access token, or refreshing it failed."""


class SyncNotConfiguredError(RemoteStoreError):
    """Sync was requested but no remote client is configured."""
