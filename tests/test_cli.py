"""
tests/test_cli.py
"""
from __future__ import annotations

from folio.blog import app, get_gate, get_store
from folio.seed import GALLERY_KEY, POSTS_KEY


def test_init_seeds_collections(client):
    get_store().clear()
    result = app.test_cli_runner().invoke(args=["init"])
    assert result.exit_code == 0, result.output
    assert "Store ready" in result.output
    assert len(get_store().read(POSTS_KEY)) == 3
    assert len(get_store().read(GALLERY_KEY)) == 13


def test_create_account_command(client):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["create-account", "--username", " owner ", "--password", "pw"]
    )
    assert result.exit_code == 0, result.output
    assert get_gate().username == "owner"

    again = runner.invoke(
        args=["create-account", "--username", "other", "--password", "pw"]
    )
    assert again.exit_code != 0
    assert "Account already exists" in again.output


def test_reset_command(client):
    get_gate().create_account("owner", "pw")
    result = app.test_cli_runner().invoke(args=["reset", "--yes"])
    assert result.exit_code == 0, result.output
    assert not get_gate().has_account
    assert get_store().keys() == []
