from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from .errors import MalformedIdentifierError, ReltrackError, ResolutionError
from .releases import AvailabilityResult, ReleaseResolver, RepoRef, check_availability, parse_repo_ref
from .state import InstalledState


class Action(str, Enum):
    INSTALL = "install"
    UPDATE = "update"
    NONE = "none"
    ERROR = "error"


def _never(prompt: str) -> bool:
    return False


def _ignore(message: str) -> None:
    return None


def _no_select(ref: RepoRef) -> None:
    return None


@dataclass(frozen=True)
class Capabilities:
    """
    Side-effecting collaborators of the engine.

    confirm blocks until the operator answers. install/update are expected to
    raise ReltrackError on failure; anything they return is ignored. select
    receives the repository right before install/update is called for it.
    """

    install: Callable[[str, str], object]
    update: Callable[[str, str], object]
    confirm: Callable[[str], bool] = _never
    report: Callable[[str], None] = _ignore
    select: Callable[[RepoRef], None] = _no_select


@dataclass(frozen=True)
class ItemOutcome:
    line: str
    package: str | None
    action: Action
    installed_version: str | None = None
    latest_version: str | None = None
    availability: AvailabilityResult | None = None
    applied: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "line": self.line,
            "package": self.package,
            "action": self.action.value,
            "installed_version": self.installed_version,
            "latest_version": self.latest_version,
            "binary_available": self.availability.available if self.availability else None,
            "binary_asset": (self.availability.matched_asset_name or None) if self.availability else None,
            "applied": self.applied,
            "error": self.error,
        }


@dataclass
class RunResult:
    state: InstalledState
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def by_action(self, action: Action) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.action is action]

    @property
    def errors(self) -> list[ItemOutcome]:
        return self.by_action(Action.ERROR)

    @property
    def applied(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.applied]


def decide(installed_version: str | None, version_tag: str) -> Action:
    """Tags are opaque: only equality matters, never ordering."""
    if installed_version is not None and installed_version == version_tag:
        return Action.NONE
    if not version_tag:
        return Action.NONE
    if installed_version is None:
        return Action.INSTALL
    return Action.UPDATE


class ReconciliationEngine:
    def __init__(
        self,
        *,
        resolver: ReleaseResolver,
        capabilities: Capabilities,
        binary_hint: str | None = None,
    ) -> None:
        self.resolver = resolver
        self.capabilities = capabilities
        self.binary_hint = binary_hint

    def run(self, lines: Iterable[str], state: InstalledState) -> RunResult:
        result = RunResult(state=state)
        for raw in lines:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            result.outcomes.append(self._reconcile_one(line, state))
        return result

    def _reconcile_one(self, line: str, state: InstalledState) -> ItemOutcome:
        report = self.capabilities.report

        try:
            ref = parse_repo_ref(line)
        except MalformedIdentifierError as e:
            report(f"warning: skipping manifest line: {e}")
            return ItemOutcome(line=line, package=None, action=Action.ERROR, error=str(e))

        name = ref.name
        try:
            release = self.resolver.resolve(ref)
        except ResolutionError as e:
            report(f"warning: error checking release for {ref.key} ({e.kind}): {e}")
            return ItemOutcome(line=line, package=name, action=Action.ERROR, error=str(e))

        installed = state.lookup(name)
        tag = release.version_tag
        availability = check_availability(release, self.binary_hint) if release.has_release else None
        action = decide(installed, tag)
        outcome = ItemOutcome(
            line=line,
            package=name,
            action=action,
            installed_version=installed,
            latest_version=tag or None,
            availability=availability,
        )

        if action is Action.NONE:
            if installed is not None and installed == tag:
                report(f"{name}: up to date ({installed})")
            elif installed is not None:
                report(f"{name}: no release published for {ref.key}; keeping {installed}")
            else:
                report(f"{name}: no release published for {ref.key}")
            return outcome

        bin_info = availability.describe(tag) if availability else ""
        if action is Action.INSTALL:
            report(f"{name}: not installed, latest is {tag} | bin={bin_info}")
            prompt = f"Install {name} {tag}?"
            apply = self.capabilities.install
        else:
            report(f"{name}: update available {installed} -> {tag} | bin={bin_info}")
            prompt = f"Update {name} from {installed} to {tag}?"
            apply = self.capabilities.update

        if not self.capabilities.confirm(prompt):
            return outcome

        try:
            self.capabilities.select(ref)
            apply(name, tag)
        except ReltrackError as e:
            report(f"warning: {action.value} of {name} {tag} failed: {e}")
            return ItemOutcome(
                line=line,
                package=name,
                action=Action.ERROR,
                installed_version=installed,
                latest_version=tag,
                availability=availability,
                error=str(e),
            )

        state.upsert(name, tag)
        report(f"{name}: {'installed' if action is Action.INSTALL else 'updated'} {tag}")
        return ItemOutcome(
            line=line,
            package=name,
            action=action,
            installed_version=installed,
            latest_version=tag,
            availability=availability,
            applied=True,
        )
