from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .errors import PersistenceLoadError, PersistenceSaveError

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class InstalledPackage:
    name: str
    version: str


class InstalledState:
    """
    Installed package name -> version, in insertion order.

    upsert() is the only mutator. Equality ignores order.
    """

    def __init__(self, packages: list[InstalledPackage] | None = None) -> None:
        self._versions: dict[str, str] = {}
        for pkg in packages or []:
            self.upsert(pkg.name, pkg.version)

    def lookup(self, name: str) -> str | None:
        return self._versions.get(name)

    def upsert(self, name: str, version: str) -> None:
        # Existing keys keep their position in a dict.
        self._versions[name] = version

    def snapshot(self) -> list[InstalledPackage]:
        return [InstalledPackage(name=n, version=v) for n, v in self._versions.items()]

    def as_dict(self) -> dict[str, str]:
        return dict(self._versions)

    def __contains__(self, name: object) -> bool:
        return name in self._versions

    def __iter__(self) -> Iterator[InstalledPackage]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._versions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InstalledState):
            return NotImplemented
        return self._versions == other._versions

    def __repr__(self) -> str:
        return f"InstalledState({self._versions!r})"


def _parse_packages(raw: Any, *, path: Path) -> list[InstalledPackage]:
    if not isinstance(raw, dict):
        raise PersistenceLoadError(f"State file {path} is not a JSON object.")
    items = raw.get("packages", [])
    if not isinstance(items, list):
        raise PersistenceLoadError(f"State file {path}: 'packages' must be a list.")

    packages: list[InstalledPackage] = []
    for item in items:
        if not isinstance(item, dict):
            raise PersistenceLoadError(f"State file {path}: package entries must be objects.")
        name = item.get("name")
        version = item.get("version")
        if not isinstance(name, str) or not name or not isinstance(version, str):
            raise PersistenceLoadError(f"State file {path}: invalid package entry {item!r}.")
        packages.append(InstalledPackage(name=name, version=version))
    return packages


def load_state(path: Path) -> InstalledState:
    if not path.exists():
        return InstalledState()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PersistenceLoadError(f"State file {path} is not valid JSON: {e}") from e
    return InstalledState(_parse_packages(raw, path=path))


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def save_state(path: Path, state: InstalledState) -> None:
    payload = {
        "schema_version": SCHEMA_VERSION,
        "updated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "packages": [{"name": p.name, "version": p.version} for p in state.snapshot()],
    }
    try:
        _write_json_atomic(path, payload)
    except OSError as e:
        raise PersistenceSaveError(f"Could not write state file {path}: {e}") from e
