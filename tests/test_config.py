import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from reltrack.config import DEFAULT_API_URL, Config, config_path, load_config, redact_token, save_config
from reltrack.errors import ConfigError


class TestConfig(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(Path(td) / "config.json")
        self.assertEqual(cfg, Config())
        self.assertEqual(cfg.api_url, DEFAULT_API_URL)

    def test_save_and_load_ignores_unknown_keys(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.json"
            save_config(Config(token="ghp_abcdefghijkl", manifest_url="repos.txt"), path)
            raw = json.loads(path.read_text(encoding="utf-8"))
            raw["unknown"] = True
            path.write_text(json.dumps(raw), encoding="utf-8")
            cfg = load_config(path)
            mode = path.stat().st_mode & 0o777

        self.assertEqual(cfg.token, "ghp_abcdefghijkl")
        self.assertEqual(cfg.manifest_url, "repos.txt")
        if os.name == "posix":
            self.assertEqual(mode, 0o600)

    def test_corrupt_file_is_a_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.json"
            for content in (b"{broken", b"[1, 2]", b"\xff\xfe{}"):
                path.write_bytes(content)
                with self.subTest(content=content), self.assertRaises(ConfigError):
                    load_config(path)

    def test_env_path_override(self) -> None:
        with patch.dict(os.environ, {"RELTRACK_CONFIG_PATH": "/tmp/reltrack-test/config.json"}):
            self.assertEqual(config_path(), Path("/tmp/reltrack-test/config.json"))

    def test_redact_token(self) -> None:
        self.assertIsNone(redact_token(None))
        self.assertEqual(redact_token("abcdef"), "ab...ef")
        self.assertEqual(redact_token("ghp_1234567890abcd"), "ghp_12...abcd")
