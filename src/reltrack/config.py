from __future__ import annotations

import json
import os
import stat
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_path, user_data_path

from .errors import ConfigError

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_S = 30.0
STATE_FILENAME = "installed.json"


@dataclass(frozen=True)
class Config:
    api_url: str = DEFAULT_API_URL
    manifest_url: str | None = None  # URL or local path of the owner/name list
    token: str | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    state_path: str | None = None
    packages_dir: str | None = None  # unset: record versions without unpacking anything
    binary_hint: str | None = None


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("RELTRACK_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path("reltrack") / "config.json"


def default_state_path() -> Path:
    return user_data_path("reltrack") / STATE_FILENAME


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} is not a JSON object.")

    allowed = {f.name for f in Config.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered: dict[str, Any] = {k: v for k, v in raw.items() if k in allowed}
    try:
        return Config(**filtered)  # type: ignore[arg-type]
    except TypeError as e:
        raise ConfigError(f"Config file {path} has invalid fields: {e}") from e


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)

    # Best-effort permissions hardening (the file may hold a token).
    try:
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        pass

    return path


def redact_token(token: str | None) -> str | None:
    if not token:
        return token
    if len(token) <= 10:
        return token[:2] + "..." + token[-2:]
    return token[:6] + "..." + token[-4:]
