from __future__ import annotations

import io
import os
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from pathlib import Path

from .client import ReltrackClient
from .errors import InstallError, ReltrackError
from .releases import GitHubReleaseResolver, RepoRef, check_availability


def _check_member_path(name: str, dest: Path) -> Path:
    if name.startswith("/"):
        raise InstallError(f"Archive contains an absolute path entry: {name!r}")
    target = (dest / name).resolve()
    base = dest.resolve()
    if not str(target).startswith(str(base) + os.sep) and target != base:
        raise InstallError(f"Archive contains an invalid path entry: {name!r}")
    return target


def _safe_extract_zip(data: bytes, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
        for info in zf.infolist():
            if not info.filename:
                continue
            target = _check_member_path(info.filename, dest)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info, "r") as src, target.open("wb") as out:
                shutil.copyfileobj(src, out)
            # Keep executable bits for unpacked binaries.
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                target.chmod(mode)


def _safe_extract_tar(data: bytes, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tf:
        for member in tf.getmembers():
            target = _check_member_path(member.name, dest)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            if not member.isfile():
                # Links and devices are skipped.
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            src = tf.extractfile(member)
            if src is None:
                continue
            with src, target.open("wb") as out:
                shutil.copyfileobj(src, out)
            target.chmod(member.mode & 0o777 or 0o644)


def extract_archive(asset_name: str, data: bytes, dest: Path) -> None:
    try:
        if asset_name.endswith(".zip"):
            _safe_extract_zip(data, dest)
        elif asset_name.endswith(".tar.gz"):
            _safe_extract_tar(data, dest)
        else:
            raise InstallError(f"Unsupported archive format: {asset_name}")
    except (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError, ValueError) as e:
        # Damaged compressed streams surface as zlib/gzip errors, not archive errors.
        raise InstallError(f"Could not unpack {asset_name}: {e}") from e


class ArchiveInstaller:
    """
    Downloads the archive asset of a tagged release and unpacks it into
    <packages_dir>/<name>. The previous directory is restored if unpacking fails.

    The engine calls select() with the repository it is reconciling before
    install/update, so two owners publishing the same name never get mixed up.
    """

    def __init__(
        self,
        *,
        client: ReltrackClient,
        packages_dir: Path,
        binary_hint: str | None = None,
    ) -> None:
        self._client = client
        self._resolver = GitHubReleaseResolver(client)
        self.packages_dir = packages_dir.expanduser().resolve()
        self.binary_hint = binary_hint
        self._current: RepoRef | None = None

    def select(self, ref: RepoRef) -> None:
        self._current = ref

    def install(self, name: str, version: str) -> None:
        self._install(name, version)

    def update(self, name: str, version: str) -> None:
        self._install(name, version)

    def package_dir(self, name: str) -> Path:
        return self.packages_dir / name

    def _install(self, name: str, version: str) -> None:
        ref = self._current
        if ref is None or ref.name != name:
            raise InstallError(f"No repository selected for package {name!r}.")

        try:
            release = self._resolver.resolve_tag(ref, version)
        except ReltrackError as e:
            raise InstallError(f"Could not look up {ref.key}@{version}: {e}") from e
        availability = check_availability(release, self.binary_hint)
        asset = release.asset(availability.matched_asset_name) if availability.available else None
        if asset is None or not asset.download_url:
            raise InstallError(f"Release {ref.key}@{version} has no installable archive asset.")

        try:
            data = self._client.download(asset.download_url)
        except ReltrackError as e:
            raise InstallError(f"Download of {asset.name} failed: {e}") from e

        try:
            self._unpack(name=name, asset_name=asset.name, data=data)
        except OSError as e:
            raise InstallError(f"Could not install {name} {version}: {e}") from e

    def _unpack(self, *, name: str, asset_name: str, data: bytes) -> None:
        try:
            self.packages_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Could not create packages directory: {self.packages_dir}") from e

        dest = self.package_dir(name)

        # Scratch space lives beside packages_dir (same filesystem, so moves are
        # renames) and never inside it, where it could shadow a package.
        with tempfile.TemporaryDirectory(prefix=".reltrack-", dir=self.packages_dir.parent) as td:
            unpack_root = Path(td) / "unpacked"
            extract_archive(asset_name, data, unpack_root)

            # Archives commonly wrap everything in a single top-level folder.
            source_root = unpack_root
            children = list(unpack_root.iterdir())
            if len(children) == 1 and children[0].is_dir():
                source_root = children[0]

            backup = Path(td) / "previous"
            had_existing = dest.exists()
            if had_existing:
                dest.rename(backup)

            try:
                shutil.move(str(source_root), str(dest))
            except OSError as e:
                if dest.exists():
                    shutil.rmtree(dest, ignore_errors=True)
                if had_existing:
                    backup.rename(dest)
                raise InstallError(f"Could not install {name}: {e}") from e
