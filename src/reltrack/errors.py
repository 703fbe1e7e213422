from __future__ import annotations

from dataclasses import dataclass


class ReltrackError(RuntimeError):
    pass


class ConnectivityError(ReltrackError):
    pass


class ManifestError(ReltrackError):
    pass


class MalformedIdentifierError(ReltrackError):
    pass


class ResolutionError(ReltrackError):
    """
    Per-repository lookup failure.

    kind is "transient" for transport/HTTP failures and "malformed" when the
    response could not be decoded into release metadata.
    """

    TRANSIENT = "transient"
    MALFORMED = "malformed"

    def __init__(self, message: str, *, kind: str = TRANSIENT) -> None:
        super().__init__(message)
        self.kind = kind


class PersistenceLoadError(ReltrackError):
    pass


class PersistenceSaveError(ReltrackError):
    pass


class InstallError(ReltrackError):
    pass


@dataclass(frozen=True)
class ReltrackHTTPError(ReltrackError):
    status_code: int
    body: str

    def __str__(self) -> str:  # pragma: no cover
        return f"HTTP {self.status_code}: {self.body}"


class ConfigError(ReltrackError):
    pass
