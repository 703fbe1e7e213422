import json
import tempfile
import unittest
from pathlib import Path

from reltrack.errors import PersistenceLoadError, PersistenceSaveError
from reltrack.state import InstalledPackage, InstalledState, load_state, save_state


class TestInstalledState(unittest.TestCase):
    def test_upsert_appends_then_replaces_in_place(self) -> None:
        state = InstalledState()
        state.upsert("widget", "v1.0.0")
        state.upsert("gadget", "0.3")
        state.upsert("widget", "v2.0.0")

        self.assertEqual(
            state.snapshot(),
            [InstalledPackage("widget", "v2.0.0"), InstalledPackage("gadget", "0.3")],
        )
        self.assertEqual(state.lookup("widget"), "v2.0.0")
        self.assertIsNone(state.lookup("missing"))

    def test_upsert_is_idempotent(self) -> None:
        once = InstalledState([InstalledPackage("gadget", "0.3")])
        twice = InstalledState([InstalledPackage("gadget", "0.3")])
        once.upsert("widget", "v2")
        twice.upsert("widget", "v2")
        twice.upsert("widget", "v2")
        self.assertEqual(once, twice)
        self.assertEqual(once.snapshot(), twice.snapshot())

    def test_equality_ignores_order(self) -> None:
        a = InstalledState([InstalledPackage("a", "1"), InstalledPackage("b", "2")])
        b = InstalledState([InstalledPackage("b", "2"), InstalledPackage("a", "1")])
        self.assertEqual(a, b)
        self.assertNotEqual(a, InstalledState([InstalledPackage("a", "1")]))


class TestPersistence(unittest.TestCase):
    def test_missing_file_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            state = load_state(Path(td) / "installed.json")
        self.assertEqual(len(state), 0)

    def test_round_trip(self) -> None:
        state = InstalledState()
        state.upsert("widget", "v2.0.0")
        state.upsert("gadget", "0.3")
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nested" / "installed.json"
            save_state(path, state)
            loaded = load_state(path)
            raw = json.loads(path.read_text(encoding="utf-8"))

        self.assertEqual(loaded, state)
        self.assertEqual(raw["schema_version"], 1)
        self.assertEqual(
            raw["packages"],
            [{"name": "widget", "version": "v2.0.0"}, {"name": "gadget", "version": "0.3"}],
        )

    def test_save_overwrites_prior_snapshot(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "installed.json"
            save_state(path, InstalledState([InstalledPackage("old", "1")]))
            save_state(path, InstalledState([InstalledPackage("new", "2")]))
            loaded = load_state(path)
            leftovers = sorted(p.name for p in Path(td).iterdir())

        self.assertEqual(loaded.as_dict(), {"new": "2"})
        self.assertEqual(leftovers, ["installed.json"])

    def test_corrupt_file_raises(self) -> None:
        for content in ("{not json", "[]", '{"packages": {}}', '{"packages": [{"name": "x"}]}'):
            with self.subTest(content=content):
                with tempfile.TemporaryDirectory() as td:
                    path = Path(td) / "installed.json"
                    path.write_text(content, encoding="utf-8")
                    with self.assertRaises(PersistenceLoadError):
                        load_state(path)

    def test_unwritable_destination_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            blocker = Path(td) / "blocker"
            blocker.write_text("file, not a directory", encoding="utf-8")
            with self.assertRaises(PersistenceSaveError):
                save_state(blocker / "installed.json", InstalledState())
