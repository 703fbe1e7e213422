from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

from .client import ReltrackClient
from .errors import MalformedIdentifierError, ReltrackError, ReltrackHTTPError, ResolutionError

# Priority order; matching is case-sensitive and by suffix only.
DEFAULT_BINARY_SUFFIXES = (".zip", ".tar.gz")

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True)
class RepoRef:
    owner: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class ReleaseAsset:
    name: str
    download_url: str | None = None


@dataclass(frozen=True)
class ReleaseInfo:
    version_tag: str
    assets: tuple[ReleaseAsset, ...] = ()

    @property
    def asset_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.assets)

    @property
    def has_release(self) -> bool:
        return bool(self.version_tag)

    def asset(self, name: str) -> ReleaseAsset | None:
        for a in self.assets:
            if a.name == name:
                return a
        return None


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    matched_asset_name: str
    all_asset_names: tuple[str, ...]

    def describe(self, version_tag: str = "") -> str:
        if self.available:
            return f"yes ({self.matched_asset_name})"
        return f"no for {version_tag}. Asset names: {list(self.all_asset_names)}"


class ReleaseResolver(Protocol):
    def resolve(self, ref: RepoRef) -> ReleaseInfo:
        ...


def parse_repo_ref(value: str) -> RepoRef:
    raw = value.strip()
    parts = raw.split("/")
    if len(parts) != 2:
        raise MalformedIdentifierError(f"Invalid repository identifier {value!r}. Expected <owner>/<name>.")
    owner, name = parts
    if not _SEGMENT_RE.match(owner) or not _SEGMENT_RE.match(name) or name in (".", ".."):
        raise MalformedIdentifierError(f"Invalid repository identifier {value!r}. Expected <owner>/<name>.")
    return RepoRef(owner=owner, name=name)


def check_availability(
    release: ReleaseInfo,
    binary_hint: str | None = None,
    suffixes: tuple[str, ...] = DEFAULT_BINARY_SUFFIXES,
) -> AvailabilityResult:
    names = release.asset_names
    candidates = [n for n in names if any(n.endswith(s) for s in suffixes)]

    matched = ""
    hint = (binary_hint or "").strip().lower()
    if hint:
        for n in candidates:
            if hint in n.lower():
                matched = n
                break
    if not matched and candidates:
        matched = candidates[0]

    return AvailabilityResult(available=bool(matched), matched_asset_name=matched, all_asset_names=names)


def _parse_release_obj(obj: Any, *, ref: RepoRef) -> ReleaseInfo:
    if not isinstance(obj, dict):
        raise ResolutionError(f"Unexpected release payload for {ref.key}", kind=ResolutionError.MALFORMED)

    tag = obj.get("tag_name")
    if tag is None:
        tag = ""
    if not isinstance(tag, str):
        raise ResolutionError(f"Release tag for {ref.key} is not a string", kind=ResolutionError.MALFORMED)

    assets_raw = obj.get("assets")
    if assets_raw is None:
        assets_raw = []
    if not isinstance(assets_raw, list):
        raise ResolutionError(f"Release assets for {ref.key} are not a list", kind=ResolutionError.MALFORMED)

    assets: list[ReleaseAsset] = []
    for item in assets_raw:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ResolutionError(f"Release asset for {ref.key} has no name", kind=ResolutionError.MALFORMED)
        url = item.get("browser_download_url")
        assets.append(ReleaseAsset(name=item["name"], download_url=url if isinstance(url, str) and url else None))

    return ReleaseInfo(version_tag=tag, assets=tuple(assets))


class GitHubReleaseResolver:
    def __init__(self, client: ReltrackClient) -> None:
        self._client = client

    def _path(self, ref: RepoRef, suffix: str) -> str:
        return f"/repos/{quote(ref.owner, safe='')}/{quote(ref.name, safe='')}/releases/{suffix}"

    def _get_release(self, ref: RepoRef, suffix: str) -> ReleaseInfo:
        try:
            resp = self._client.request(method="GET", path=self._path(ref, suffix))
        except ReltrackHTTPError as e:
            if e.status_code == 404:
                # No published release (or no such repository): not a failure.
                return ReleaseInfo(version_tag="")
            raise ResolutionError(
                f"Release lookup for {ref.key} failed with HTTP {e.status_code}",
                kind=ResolutionError.TRANSIENT,
            ) from e
        except ReltrackError as e:
            raise ResolutionError(f"Release lookup for {ref.key} failed: {e}", kind=ResolutionError.TRANSIENT) from e

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResolutionError(
                f"Release payload for {ref.key} is not JSON", kind=ResolutionError.MALFORMED
            ) from e
        return _parse_release_obj(data, ref=ref)

    def resolve(self, ref: RepoRef) -> ReleaseInfo:
        return self._get_release(ref, "latest")

    def resolve_tag(self, ref: RepoRef, tag: str) -> ReleaseInfo:
        return self._get_release(ref, f"tags/{quote(tag, safe='')}")
