"""Error taxonomy for the ledger core."""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""

    pass


class ValidationError(LedgerError, ValueError):
    """Invalid argument. Raised before anything is written."""


class NotFoundError(LedgerError, LookupError):
    """Unknown user, account or transaction id."""


class IntegrityError(LedgerError):
    """Foreign-key or check constraint violation in the ledger store."""


class ConcurrencyError(LedgerError):
    """The store could not serialise a write (database busy or locked)."""


class ArtifactError(LedgerError, OSError):
    """Export artifact could not be written or read."""


class ArtifactWriteError(ArtifactError):
    """Export failed; the previous artifact (if any) is left untouched."""


class ArtifactReadError(ArtifactError):
    """Artifact exists but is unreadable, undecodable or truncated."""


class InvalidArtifactPathError(ArtifactError):
    """Requested artifact name does not resolve inside the export directory."""


class ArtifactNotFoundError(NotFoundError):
    """No export artifact has been written yet."""
