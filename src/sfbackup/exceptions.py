class SFBackupError(RuntimeError):
    """Base class for errors raised by sfbackup."""


class MissingCredentialsError(SFBackupError):
    """Raised when the required Salesforce credentials are not present."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required credentials: " + ", ".join(missing))


class ConfigError(SFBackupError):
    """Raised for unreadable or malformed configuration."""


class CatalogError(SFBackupError):
    """Raised when describe metadata cannot be fetched before the run starts."""


class FatalBackupError(SFBackupError):
    """Raised after a pre-flight failure has been reported; ends the run."""


class NotificationError(SFBackupError):
    """Raised when the run summary could not be delivered."""


class ExportError(SFBackupError):
    """Raised when a single object's export fails."""


class BlobDecodeError(ExportError):
    """Raised when a base64 field value cannot be decoded."""
