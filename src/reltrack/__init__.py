from ._version import __version__
from .errors import (
    ConfigError,
    ConnectivityError,
    InstallError,
    MalformedIdentifierError,
    ManifestError,
    PersistenceLoadError,
    PersistenceSaveError,
    ReltrackError,
    ReltrackHTTPError,
    ResolutionError,
)
from .reconcile import Action, Capabilities, ReconciliationEngine, RunResult
from .releases import GitHubReleaseResolver, ReleaseInfo, RepoRef, check_availability, parse_repo_ref
from .state import InstalledState, load_state, save_state

__all__ = [
    "__version__",
    "Action",
    "Capabilities",
    "ConfigError",
    "ConnectivityError",
    "GitHubReleaseResolver",
    "InstallError",
    "InstalledState",
    "MalformedIdentifierError",
    "ManifestError",
    "PersistenceLoadError",
    "PersistenceSaveError",
    "ReconciliationEngine",
    "ReleaseInfo",
    "ReltrackError",
    "ReltrackHTTPError",
    "RepoRef",
    "ResolutionError",
    "RunResult",
    "check_availability",
    "load_state",
    "parse_repo_ref",
    "save_state",
]
