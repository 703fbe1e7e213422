from __future__ import annotations

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

from ._version import __version__
from .client import ReltrackClient
from .config import Config, config_path, default_state_path, load_config, redact_token, save_config
from .errors import ManifestError, ReltrackError, ReltrackHTTPError
from .installer import ArchiveInstaller
from .reconcile import Action, Capabilities, ReconciliationEngine, RunResult
from .releases import GitHubReleaseResolver, RepoRef
from .state import load_state, save_state


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _stderr(message: str) -> None:
    print(message, file=sys.stderr)


def _report(message: str) -> None:
    if message.startswith("warning:"):
        _stderr(message)
    else:
        print(message)


def _report_warnings_only(message: str) -> None:
    # Keeps stdout parseable under --json.
    if message.startswith("warning:"):
        _stderr(message)


def _decline(prompt: str) -> bool:
    return False


def _prompt_yes_no(prompt: str) -> bool:
    try:
        response = input(f"{prompt} [y/N] ").strip().lower()
    except EOFError:
        return False
    return response in ("y", "yes")


def _always_yes(prompt: str) -> bool:
    return True


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="reltrack",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Track the latest GitHub releases of a list of repositories against locally installed versions.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              RELTRACK_API_URL, RELTRACK_MANIFEST_URL, RELTRACK_TOKEN (or GITHUB_TOKEN),
              RELTRACK_TIMEOUT_S, RELTRACK_STATE_PATH, RELTRACK_PACKAGES_DIR, RELTRACK_CONFIG_PATH
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser, *, default: object = None) -> None:
        # Accepted both before and after the subcommand, e.g.:
        #   reltrack --token ghp_... check
        #   reltrack check --token ghp_...
        parser.add_argument("--api-url", default=default, help="Release API base URL (default: https://api.github.com)")
        parser.add_argument("--manifest", default=default, help="Manifest URL or local path (one owner/name per line)")
        parser.add_argument("--token", default=default, help="API token (overrides config/env)")
        parser.add_argument("--timeout-s", type=float, default=default, help="HTTP timeout in seconds")
        parser.add_argument("--state", default=default, help="Installed-state JSON file")
        parser.add_argument("--binary-hint", default=default, help="Prefer archive assets whose name contains this text")

    _add_runtime_overrides(p)
    p.add_argument("--version", action="version", version=f"reltrack {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    check = sub.add_parser("check", help="Report install/update candidates without changing anything")
    _add_runtime_overrides(check, default=argparse.SUPPRESS)
    check.add_argument("--json", action="store_true", help="Output JSON")

    sync = sub.add_parser("sync", help="Install or update packages after confirmation")
    _add_runtime_overrides(sync, default=argparse.SUPPRESS)
    sync.add_argument("--yes", "-y", action="store_true", help="Confirm every install/update without prompting")
    sync.add_argument(
        "--packages-dir",
        help="Unpack release archives here (default: only record versions in the state file)",
    )
    sync.add_argument("--json", action="store_true", help="Output JSON")

    lst = sub.add_parser("list", help="Show installed packages")
    _add_runtime_overrides(lst, default=argparse.SUPPRESS)
    lst.add_argument("--json", action="store_true", help="Output JSON")

    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config (token redacted)")

    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--api-url")
    cfg_set.add_argument("--manifest-url")
    cfg_set.add_argument("--token")
    cfg_set.add_argument("--timeout-s", type=float)
    cfg_set.add_argument("--state-path")
    cfg_set.add_argument("--packages-dir")
    cfg_set.add_argument("--binary-hint")

    return p


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    api_url = getattr(args, "api_url", None) or os.getenv("RELTRACK_API_URL") or base.api_url
    manifest_url = getattr(args, "manifest", None) or os.getenv("RELTRACK_MANIFEST_URL") or base.manifest_url
    token = (
        getattr(args, "token", None)
        or os.getenv("RELTRACK_TOKEN")
        or os.getenv("GITHUB_TOKEN")
        or base.token
    )
    timeout_s = getattr(args, "timeout_s", None) or os.getenv("RELTRACK_TIMEOUT_S") or base.timeout_s
    try:
        timeout_s_f = float(timeout_s)
    except (TypeError, ValueError):
        timeout_s_f = base.timeout_s
    state_path = getattr(args, "state", None) or os.getenv("RELTRACK_STATE_PATH") or base.state_path
    packages_dir = getattr(args, "packages_dir", None) or os.getenv("RELTRACK_PACKAGES_DIR") or base.packages_dir
    binary_hint = getattr(args, "binary_hint", None) or base.binary_hint

    return Config(
        api_url=api_url,
        manifest_url=manifest_url,
        token=token,
        timeout_s=timeout_s_f,
        state_path=state_path,
        packages_dir=packages_dir,
        binary_hint=binary_hint,
    )


def _client_from_cfg(cfg: Config) -> ReltrackClient:
    return ReltrackClient(api_url=cfg.api_url, token=cfg.token, timeout_s=cfg.timeout_s)


def _state_path(cfg: Config) -> Path:
    if cfg.state_path:
        return Path(cfg.state_path).expanduser()
    return default_state_path()


def _read_manifest(client: ReltrackClient, source: str | None) -> list[str]:
    if not source:
        raise ManifestError("Missing manifest. Set it via --manifest or RELTRACK_MANIFEST_URL or config.")
    if source.startswith(("http://", "https://")):
        try:
            text = client.fetch_text(source)
        except ReltrackError as e:
            raise ManifestError(f"Error fetching the manifest {source}: {e}") from e
    else:
        path = Path(source).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Error reading the manifest {path}: {e}") from e
    return text.splitlines()


def _record_only(name: str, version: str) -> None:
    return None


def _no_select(ref: RepoRef) -> None:
    return None


def _run(args: argparse.Namespace, *, interactive: bool) -> int:
    cfg = _merge_cfg(load_config(), args)
    state_path = _state_path(cfg)
    json_out = bool(getattr(args, "json", False))
    report = _report_warnings_only if json_out else _report

    client = _client_from_cfg(cfg)
    try:
        client.check_access()
        if not json_out:
            print(f"# API: {client.api_url} reachable")
        lines = _read_manifest(client, cfg.manifest_url)
        state = load_state(state_path)

        install = update = _record_only
        select = _no_select
        if interactive and cfg.packages_dir:
            installer = ArchiveInstaller(
                client=client,
                packages_dir=Path(cfg.packages_dir),
                binary_hint=cfg.binary_hint,
            )
            install, update, select = installer.install, installer.update, installer.select

        if not interactive:
            confirm = _decline
        elif getattr(args, "yes", False):
            confirm = _always_yes
        else:
            confirm = _prompt_yes_no

        engine = ReconciliationEngine(
            resolver=GitHubReleaseResolver(client),
            capabilities=Capabilities(
                install=install, update=update, confirm=confirm, report=report, select=select
            ),
            binary_hint=cfg.binary_hint,
        )
        result = engine.run(lines, state)
    finally:
        client.close()

    save_state(state_path, result.state)
    _print_result(result, state_path=state_path, json_out=json_out)
    return 0


def _print_result(result: RunResult, *, state_path: Path, json_out: bool) -> None:
    if json_out:
        payload = {
            "state_path": str(state_path),
            "outcomes": [o.to_dict() for o in result.outcomes],
            "installed": result.state.as_dict(),
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return

    print(f"state: {state_path}")
    _print_table(
        [
            ["ACTION", "COUNT"],
            ["install", str(len(result.by_action(Action.INSTALL)))],
            ["update", str(len(result.by_action(Action.UPDATE)))],
            ["none", str(len(result.by_action(Action.NONE)))],
            ["error", str(len(result.errors))],
            ["applied", str(len(result.applied))],
        ]
    )


def cmd_check(args: argparse.Namespace) -> int:
    return _run(args, interactive=False)


def cmd_sync(args: argparse.Namespace) -> int:
    return _run(args, interactive=True)


def cmd_list(args: argparse.Namespace) -> int:
    cfg = _merge_cfg(load_config(), args)
    state_path = _state_path(cfg)
    state = load_state(state_path)
    if args.json:
        print(json.dumps([{"name": p.name, "version": p.version} for p in state], indent=2))
        return 0
    print(f"state: {state_path}")
    if not len(state):
        print("(no packages installed)")
        return 0
    _print_table([["NAME", "VERSION"]] + [[p.name, p.version] for p in state])
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = load_config()
        d = cfg.__dict__.copy()
        d["token"] = redact_token(cfg.token)
        print(json.dumps(d, indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        updates = {
            "api_url": args.api_url,
            "manifest_url": args.manifest_url,
            "token": args.token,
            "timeout_s": args.timeout_s,
            "state_path": args.state_path,
            "packages_dir": args.packages_dir,
            "binary_hint": args.binary_hint,
        }
        d = cfg.__dict__.copy()
        d.update({k: v for k, v in updates.items() if v is not None})
        path = save_config(Config(**d))
        print(str(path))
        return 0

    raise AssertionError("unreachable")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.cmd == "check":
            return cmd_check(args)
        if args.cmd == "sync":
            return cmd_sync(args)
        if args.cmd == "list":
            return cmd_list(args)
        if args.cmd == "config":
            return cmd_config(args)
        raise AssertionError("unreachable")
    except ReltrackHTTPError as e:
        _stderr(f"error: HTTP {e.status_code}: {e.body}")
        return 1
    except ReltrackError as e:
        _stderr(f"error: {e}")
        return 1
    except OSError as e:
        _stderr(f"error: {e}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
