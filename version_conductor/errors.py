"""Exception types raised by the graph engine and its collaborators."""

from __future__ import annotations


class VersionConductorError(Exception):
    """Base class for all errors raised by version-conductor."""


class DiscoveryFailure(VersionConductorError):
    """Repositories for an account could not be enumerated. Aborts a build."""

    def __init__(self, account: str, cause: BaseException | None = None):
        self.account = account
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"failed to list repositories for {account}{detail}")


class ManifestNotFound(VersionConductorError):
    """The requested manifest file does not exist in the repository."""

    def __init__(self, account: str, repository: str, path: str):
        self.account = account
        self.repository = repository
        self.path = path
        super().__init__(f"{path} not found in {account}/{repository}")


class ManifestParseError(VersionConductorError):
    """A manifest could not be read at all (bad encoding, invalid JSON/TOML)."""


class HostingError(VersionConductorError):
    """The hosting service returned an error other than "not found"."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message if status is None else f"{message} (HTTP {status})")


class CacheWriteFailure(VersionConductorError):
    """Writing an entry to the durable cache tier failed."""


class UnknownEcosystemError(VersionConductorError, ValueError):
    """An ecosystem tag outside the supported set."""


class ConfigError(VersionConductorError):
    """A settings or portfolio file is missing, unreadable or invalid."""
