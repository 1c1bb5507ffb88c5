"""Tests for the campuskart command line."""

from click.testing import CliRunner

from campuskart.app import build_app
from campuskart.cli import main


def _run(tmp_path, *args):
    return CliRunner().invoke(main, ["--home", str(tmp_path), *args])


def test_register_and_status(tmp_path):
    result = _run(tmp_path, "user", "register", "u1", "--name", "Ada")
    assert result.exit_code == 0, result.output
    assert build_app(tmp_path).ledger.status("u1").points == 5

    result = _run(tmp_path, "user", "status", "u1")
    assert result.exit_code == 0
    assert "Strikes: 0/3" in result.output


def test_submit_flags_and_strikes(tmp_path):
    _run(tmp_path, "user", "register", "u1")
    result = _run(tmp_path, "listing", "submit", "u1", "cheap shit lamp")
    assert result.exit_code == 0
    assert "Flagged" in result.output
    assert build_app(tmp_path).ledger.status("u1").strike_count == 1


def test_admin_flow(tmp_path):
    _run(tmp_path, "user", "register", "u1")

    denied = _run(tmp_path, "admin", "--as", "u1", "ban", "u1")
    assert denied.exit_code == 1
    assert "failed" in denied.output

    assert _run(tmp_path, "admin", "--as", "root", "bootstrap").exit_code == 0
    assert _run(tmp_path, "admin", "--as", "root", "ban", "u1").exit_code == 0
    assert build_app(tmp_path).ledger.status("u1").banned

    rejected = _run(tmp_path, "listing", "submit", "u1", "Desk")
    assert rejected.exit_code == 1

    exported = _run(tmp_path, "audit", "--action", "user.ban")
    assert exported.exit_code == 0
    assert '"success": false' in exported.output
    assert '"success": true' in exported.output


def test_sale_and_sweep(tmp_path):
    app = build_app(tmp_path)
    app.ledger.register("seller")
    listing = app.listings.submit("seller", "Desk", "")

    result = _run(tmp_path, "sale", listing.id, "seller", "buyer")
    assert result.exit_code == 0
    assert build_app(tmp_path).listings.get(listing.id).status == "sold"

    assert _run(tmp_path, "sale", "missing", "seller", "buyer").exit_code == 0
    assert _run(tmp_path, "sweep").exit_code == 0


def test_bootstrap_failure_is_reported(tmp_path):
    result = _run(tmp_path, "admin", "--as", "", "bootstrap")
    assert result.exit_code == 1
    assert "failed" in result.output
    assert "Traceback" not in result.output
