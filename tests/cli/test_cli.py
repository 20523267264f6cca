import json

import pytest

from osrbac import __version__
from osrbac import cli
from osrbac.store import OpenSearchAdapter


@pytest.fixture
def store(monkeypatch, fake_client):
    adapter = OpenSearchAdapter(fake_client, "policies")
    monkeypatch.setattr(cli, "_make_adapter", lambda settings: adapter)
    return adapter


def test_version(capsys):
    assert cli.main(["--version"]) == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == f"osrbac {__version__}"


def test_no_command_prints_usage(capsys):
    assert cli.main([]) == cli.EXIT_USAGE
    assert "usage" in capsys.readouterr().err


def test_unknown_flag_exits():
    with pytest.raises(SystemExit):
        cli.main(["--nope"])


def test_add_list_remove(store, capsys):
    assert cli.main(["policies", "add", "p", "alice", "/reports", "GET"]) == cli.EXIT_OK
    assert cli.main(["policies", "add", "g", "alice", "viewer"]) == cli.EXIT_OK
    capsys.readouterr()

    assert cli.main(["policies", "list"]) == cli.EXIT_OK
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["p, alice, /reports, GET", "g, alice, viewer"]

    assert cli.main(["policies", "list", "--format", "json"]) == cli.EXIT_OK
    items = json.loads(capsys.readouterr().out)
    assert items[0] == {"ptype": "p", "rule": ["alice", "/reports", "GET"], "id": "alice:_reports:GET"}

    assert cli.main(["policies", "remove", "p", "alice", "/reports", "GET"]) == cli.EXIT_OK
    capsys.readouterr()
    cli.main(["policies", "list"])
    assert capsys.readouterr().out.splitlines() == ["g, alice, viewer"]


def test_remove_filtered(store, fake_client, capsys):
    store.add_policy("p", "p", ["alice", "editor", "docs"])
    store.add_policy("p", "p", ["bob", "viewer", "docs"])
    assert cli.main(["policies", "remove-filtered", "p", "1", "editor"]) == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "OK"
    assert set(fake_client.sources("policies")) == {"bob:viewer:docs"}


def test_init_index(monkeypatch, fake_client, capsys):
    adapter = OpenSearchAdapter(fake_client, "fresh", create_index=False)
    monkeypatch.setattr(cli, "_make_adapter", lambda settings: adapter)
    assert cli.main(["init-index"]) == cli.EXIT_OK
    assert cli.main(["init-index"]) == cli.EXIT_OK
    out = capsys.readouterr().out.splitlines()
    assert out == ["index fresh created", "index fresh already exists"]


def test_invalid_rule_is_reported(store, capsys):
    assert cli.main(["policies", "add", "p", "alice"]) == cli.EXIT_ERROR
    assert "at least 2 fields" in capsys.readouterr().err


def test_unknown_ptype_is_reported(store, capsys):
    assert cli.main(["policies", "add", "x", "a", "b"]) == cli.EXIT_ERROR


def test_invalid_configuration(monkeypatch, capsys):
    monkeypatch.setenv("OSRBAC_PAGE_SIZE", "0")
    assert cli.main(["policies", "list"]) == cli.EXIT_ERROR
    assert "invalid configuration" in capsys.readouterr().err
