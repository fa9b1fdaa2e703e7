"""Tests for `kindex init`."""

from __future__ import annotations

import yaml
from typer.testing import CliRunner

from kindex.cli.main import app
from kindex.db.connection import Database

runner = CliRunner()


def test_init_creates_database_and_configs(cli_env):
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0, result.output
    assert "Created database" in result.output
    assert (cli_env / ".kindex.db").exists()
    assert (cli_env / "home" / "config.yaml").exists()

    project_cfg = yaml.safe_load((cli_env / "kindex.yaml").read_text(encoding="utf-8"))
    assert project_cfg["chunking"]["max_tokens"] == 500

    conn = Database(cli_env / ".kindex.db").connect()
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert "knowledge_chunks" in tables


def test_init_is_idempotent(cli_env):
    runner.invoke(app, ["init"])
    (cli_env / "kindex.yaml").write_text("search:\n  limit: 5\n", encoding="utf-8")

    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    assert (cli_env / "kindex.yaml").read_text(encoding="utf-8") == "search:\n  limit: 5\n"


def test_init_custom_db_without_global_config(cli_env):
    result = runner.invoke(app, ["init", "--db", "data/kb.db", "--no-global-config"])

    assert result.exit_code == 0, result.output
    assert (cli_env / "data" / "kb.db").exists()
    assert not (cli_env / "home" / "config.yaml").exists()


def test_init_reports_bad_config(cli_env):
    (cli_env / "kindex.yaml").write_text("embedding:\n  mode: turbo\n", encoding="utf-8")
    result = runner.invoke(app, ["init", "--no-global-config"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
