# tests/test_competitor.py

"""Tests for competitor records and the registry loader."""

import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from rivalwatch.config.settings import Settings
from rivalwatch.models.competitor import Competitor, load_competitors


class TestCompetitorUrl(unittest.TestCase):

    def test_schemeless_domain_gets_https(self) -> None:
        c = Competitor(id="acme", name="Acme", domain="acme.example.com")
        self.assertEqual(c.url, "https://acme.example.com")

    def test_existing_scheme_kept(self) -> None:
        c = Competitor(id="demo", name="Demo", domain="http://localhost:3000/x")
        self.assertEqual(c.url, "http://localhost:3000/x")


class TestLoadCompetitors(unittest.TestCase):
    """Tests for load_competitors."""

    def setUp(self) -> None:
        self._tmpdir = TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "competitors.json"

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _write(self, data: object) -> None:
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def _default_ids(self) -> list[str]:
        return [row["id"] for row in Settings.DEFAULT_COMPETITORS]

    def test_missing_file_uses_defaults(self) -> None:
        competitors = load_competitors(self.path)
        self.assertEqual([c.id for c in competitors], self._default_ids())

    def test_loads_entries(self) -> None:
        self._write([
            {"id": "acme", "name": "Acme Corp", "domain": "acme.example.com"},
            {"id": "slice", "domain": "slice.example.com"},
        ])

        competitors = load_competitors(self.path)

        self.assertEqual(
            competitors,
            [
                Competitor(id="acme", name="Acme Corp", domain="acme.example.com"),
                Competitor(id="slice", name="slice", domain="slice.example.com"),
            ],
        )

    def test_skips_incomplete_entries(self) -> None:
        self._write([
            {"id": "acme", "domain": "acme.example.com"},
            {"name": "No Id", "domain": "x.example.com"},
            {"id": "no-domain"},
            "not an object",
        ])

        self.assertEqual([c.id for c in load_competitors(self.path)], ["acme"])

    def test_invalid_json_uses_defaults(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        ids = [c.id for c in load_competitors(self.path)]
        self.assertEqual(ids, self._default_ids())

    def test_non_list_uses_defaults(self) -> None:
        self._write({"id": "acme"})
        ids = [c.id for c in load_competitors(self.path)]
        self.assertEqual(ids, self._default_ids())

    def test_default_path_from_settings(self) -> None:
        Settings.COMPETITORS_PATH.parent.mkdir(parents=True, exist_ok=True)
        Settings.COMPETITORS_PATH.write_text(
            json.dumps([{"id": "acme", "domain": "acme.example.com"}]),
            encoding="utf-8",
        )
        self.assertEqual([c.id for c in load_competitors()], ["acme"])


if __name__ == "__main__":
    unittest.main()
