"""Tests for cmsops.records.commands CLI module."""

import json

import click
import pytest
from click.testing import CliRunner

from cmsops.records.commands import parse_fields, records


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


def test_parse_fields():
    assert parse_fields(("header=Hello", "media=a.jpg,b.jpg", "empty=")) == {
        "header": "Hello",
        "media": "a.jpg,b.jpg",
        "empty": "",
    }


def test_parse_fields_keeps_equals_in_value():
    assert parse_fields(("bodytext=a=b",)) == {"bodytext": "a=b"}


@pytest.mark.parametrize("item", ["header", "=value"])
def test_parse_fields_rejects_malformed(item):
    with pytest.raises(click.BadParameter):
        parse_fields((item,))


def test_add_and_list(runner, site_db):
    first = runner.invoke(records, ["add", "1", "--field", "header=Test content 1", "--json"])
    assert first.exit_code == 0, first.output
    first_id = json.loads(first.output)["id"]

    second = runner.invoke(records, ["add", "1", "--field", "header=Test content 2", "--after", str(first_id)])
    assert second.exit_code == 0, second.output

    listed = runner.invoke(records, ["list", "1", "--json"])
    data = json.loads(listed.output)
    assert [r["data"]["header"] for r in data] == ["Test content 1", "Test content 2"]


def test_add_to_top_by_default(runner, site_db, seeded_page):
    result = runner.invoke(records, ["add", "1", "--field", "header=Top", "--json"])

    new_id = json.loads(result.output)["id"]
    assert site_db.siblings("content", 1, 0)[0].id == new_id


def test_add_after_unknown_record(runner, site_db):
    result = runner.invoke(records, ["add", "1", "--field", "header=x", "--after", "42"])
    assert result.exit_code == 1


def test_add_in_language(runner, site_db):
    result = runner.invoke(records, ["add", "1", "--lang", "1", "--field", "header=Dansk", "--json"])
    assert json.loads(result.output)["language_id"] == 1


def test_list_empty(runner, site_db):
    result = runner.invoke(records, ["list", "3"])
    assert result.exit_code == 0
    assert "No records on page 3" in result.output


def test_delete_hides_record(runner, site_db, seeded_page):
    result = runner.invoke(records, ["delete", str(seeded_page[0].id)])
    assert result.exit_code == 0

    visible = json.loads(runner.invoke(records, ["list", "1", "--json"]).output)
    everything = json.loads(runner.invoke(records, ["list", "1", "--deleted", "--json"]).output)
    assert len(visible) == 2
    assert len(everything) == 3


def test_delete_missing(runner, site_db):
    result = runner.invoke(records, ["delete", "99"])
    assert result.exit_code == 1


def test_language_add_and_list(runner, site_db):
    result = runner.invoke(records, ["language", "3", "Svenska", "--iso", "sv"])
    assert result.exit_code == 0
    assert site_db.get_language(3).iso_code == "sv"

    listed = runner.invoke(records, ["languages"])
    assert "Svenska" in listed.output


def test_language_rejects_default_id(runner, site_db):
    result = runner.invoke(records, ["language", "0", "Other"])
    assert result.exit_code == 1


def test_add_global_dry_run(runner, site_db):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "records", "add", "1", "--field", "header=x"])

    assert result.exit_code == 0, result.output
    assert "Would add a record to page 1" in result.output
    assert site_db.siblings("content", 1, 0) == []


def test_delete_global_dry_run(runner, site_db, seeded_page):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "records", "delete", str(seeded_page[0].id)])

    assert result.exit_code == 0, result.output
    assert len(site_db.siblings("content", 1, 0)) == 3


def test_delete_global_dry_run_missing(runner, site_db):
    from cmsops.cli import main

    result = runner.invoke(main, ["-n", "records", "delete", "99"])
    assert result.exit_code == 1


def test_language_global_dry_run(runner, site_db):
    from cmsops.cli import main

    runner.invoke(main, ["-n", "records", "language", "3", "Svenska"])
    assert site_db.get_language(3) is None
