"""Tests for the incident ledger CLI."""

import pytest
from click.testing import CliRunner

from conftest import make_content, tamper
from incident_api import cli as cli_module
from incident_api.cli import cli


@pytest.fixture
def runner(engine, monkeypatch):
    monkeypatch.setattr(cli_module, "engine", engine)
    return CliRunner()


def test_verify_valid_tenant(runner, writer):
    writer.submit("fam-1", "user-1", make_content())

    result = runner.invoke(cli, ["verify", "fam-1"])

    assert result.exit_code == 0
    assert "is valid (1 records)" in result.output


def test_verify_tampered_tenant_exits_nonzero(runner, writer, engine):
    writer.submit("fam-1", "user-1", make_content())
    tamper(engine, "fam-1", 1, title="Changed")

    result = runner.invoke(cli, ["verify", "fam-1"])

    assert result.exit_code == cli_module.EXIT_INVALID
    assert "content_tampered" in result.output


def test_export_writes_document(runner, writer, tmp_path):
    writer.submit("fam-1", "user-1", make_content())
    out = tmp_path / "log.txt"

    result = runner.invoke(cli, ["export", "fam-1", "-o", str(out)])

    assert result.exit_code == 0
    assert out.read_text(encoding="utf-8").startswith("INCIDENT LOG EXPORT")
    assert "SHA-256:" in result.output
