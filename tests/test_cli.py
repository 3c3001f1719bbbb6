"""Tests for carddav_db.cli: command smoke tests via CliRunner.

Settings point at a temporary SQLite file; logging configuration is
patched out so command output stays parseable.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from carddav_db.cli import app
from carddav_db.errors import QueryError
from carddav_db.settings import CardDavDbSettings

runner = CliRunner()

SHIPPED = ["0000-dbinit", "0001-contacts-uri-index", "0002-normalize-email"]


@pytest.fixture()
def settings(tmp_path):
    return CardDavDbSettings(backend="sqlite", sqlite_path=str(tmp_path / "carddav.db"))


@pytest.fixture(autouse=True)
def cli_env(settings):
    with patch("carddav_db.cli.get_settings", return_value=settings), patch(
        "carddav_db.cli.configure_logging"
    ):
        yield


class TestMigrate:
    def test_applies_shipped_migrations(self):
        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0, result.output
        assert "status: applied" in result.output
        for name in SHIPPED:
            assert f"applied  {name}" in result.output

    def test_second_run_is_up_to_date(self):
        runner.invoke(app, ["migrate"])
        result = runner.invoke(app, ["migrate", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout[result.stdout.index("{"):])
        assert payload["status"] == "up_to_date"
        assert payload["skipped"] == SHIPPED

    def test_abort_exits_1(self, tmp_path):
        scripts = tmp_path / "scripts"
        (scripts / "0000-empty").mkdir(parents=True)

        result = runner.invoke(app, ["migrate", "--scripts", str(scripts)])

        assert result.exit_code == 1
        assert "failed   0000-empty" in result.output

    def test_prefix_option(self, settings):
        result = runner.invoke(app, ["migrate", "-p", "rc_"])
        assert result.exit_code == 0

        status = runner.invoke(app, ["status", "-p", "rc_", "--json"])
        assert json.loads(status.stdout[status.stdout.index("{"):])["applied"] == SHIPPED

    def test_unsupported_backend_exits_2(self, settings):
        with patch(
            "carddav_db.cli.get_settings",
            return_value=settings.model_copy(update={"backend": "oracle"}),
        ):
            result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 2
        assert "Unsupported database backend: oracle" in result.output


class TestStatus:
    def test_fresh_database_lists_pending(self):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        for name in SHIPPED:
            assert f"pending  {name}" in result.output

    def test_after_migrate(self):
        runner.invoke(app, ["migrate"])
        result = runner.invoke(app, ["status", "--json"])

        payload = json.loads(result.stdout[result.stdout.index("{"):])
        assert payload == {"applied": SHIPPED, "pending": []}

    def test_unreadable_log_closes_database(self):
        db = MagicMock()
        with patch("carddav_db.cli.open_database", return_value=db), patch(
            "carddav_db.cli.MigrationRunner"
        ) as runner_cls:
            runner_cls.return_value.applied_migrations.side_effect = QueryError("permission denied")
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 2
        assert "permission denied" in result.output
        db.close.assert_called_once()
