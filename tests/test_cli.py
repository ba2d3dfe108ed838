from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from golden_link.cli import app
from golden_link.links import Link, RecordReference, SQLiteLinkStore
from golden_link.rules import MatchResult

runner = CliRunner()

PATIENT = {
    "resourceType": "Patient",
    "name": [{"given": ["Jane"], "family": "Doe"}],
    "birthDate": "1990-04-01",
    "gender": "female",
}


@pytest.fixture
def records(tmp_path: Path) -> tuple[Path, Path]:
    left = tmp_path / "left.json"
    right = tmp_path / "right.json"
    left.write_text(json.dumps(PATIENT))
    right.write_text(json.dumps({**PATIENT, "name": [{"given": ["Mary"], "family": "Doe"}]}))
    return left, right


class TestValidateRules:
    def test_stock_rules(self):
        result = runner.invoke(app, ["validate-rules"])
        assert result.exit_code == 0
        assert "Rule set is valid (6 fields)" in result.output

    def test_invalid_rules(self, tmp_path: Path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"match_fields": []}))
        result = runner.invoke(app, ["validate-rules", str(path)])
        assert result.exit_code == 1
        assert "Invalid rules" in result.output


class TestCompare:
    def test_identical_records(self, records):
        left, _ = records
        result = runner.invoke(app, ["compare", str(left), str(left)])
        assert result.exit_code == 0
        assert "Classification: MATCH" in result.output
        assert "name+dob" in result.output

    def test_different_given_name(self, records):
        left, right = records
        result = runner.invoke(app, ["compare", str(left), str(right)])
        assert result.exit_code == 0
        assert "POSSIBLE_MATCH" in result.output

    def test_bad_field_type(self, tmp_path: Path, records):
        left, _ = records
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({**PATIENT, "birthDate": "someday"}))
        result = runner.invoke(app, ["compare", str(left), str(bad)])
        assert result.exit_code == 1
        assert "birth_date" in result.output

    def test_missing_file(self, tmp_path: Path, records):
        left, _ = records
        result = runner.invoke(app, ["compare", str(left), str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert "File not found" in result.output


class TestExplain:
    def test_binary_vector(self):
        result = runner.invoke(app, ["explain", "0b1011"])
        assert result.exit_code == 0
        assert "Classification: MATCH" in result.output

    def test_not_a_vector(self):
        result = runner.invoke(app, ["explain", "many"])
        assert result.exit_code == 1


class TestLinks:
    def test_lists_links(self, tmp_path: Path):
        db = tmp_path / "links.sqlite"
        store = SQLiteLinkStore(db)
        store.upsert_link(
            Link(
                source=RecordReference.parse("Patient/7"),
                golden=RecordReference.parse("Person/1"),
                classification=MatchResult.MATCH,
                vector=0b1011,
                score=3.2,
                rule_count=6,
            )
        )

        result = runner.invoke(app, ["links", "Person/1", "--db", str(db)])

        assert result.exit_code == 0
        assert "Patient/7" in result.output
        assert "level2" in result.output

    def test_unknown_store(self, tmp_path: Path):
        result = runner.invoke(app, ["links", "Person/1", "--db", str(tmp_path / "none.sqlite")])
        assert result.exit_code == 1

    def test_bad_reference(self, tmp_path: Path):
        result = runner.invoke(app, ["links", "Person-1", "--db", str(tmp_path / "x.sqlite")])
        assert result.exit_code == 1
