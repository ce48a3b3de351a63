"""
Streak Engine — Cron Trigger & Configuration Tests
====================================================

What:  Exit codes of `python -m streak_engine` and startup validation.
How:   run_daily_streak_job is patched; nothing touches a database.
"""

import argparse
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from streak_engine import __main__ as cli
from streak_engine.config import Settings
from streak_engine.exceptions import ConfigurationError
from streak_engine.schemas.streak import FailureRecord, JobReport

RUN_AT = datetime(2024, 1, 12, 7, 0, tzinfo=timezone.utc)


def report(failures=()) -> JobReport:
    return JobReport(success=not failures, run_at=RUN_AT, failures=list(failures))


class TestCli:

    def test_success_exits_zero_and_prints_report(self, capsys):
        with patch.object(cli, "setup_logging"), \
             patch.object(cli, "run_daily_streak_job", AsyncMock(return_value=report())) as run:
            code = cli.main(["--now", "2024-01-12T07:00:00Z"])

        assert code == cli.EXIT_OK
        assert run.await_args.kwargs["now"] == RUN_AT
        assert '"success": true' in capsys.readouterr().out

    def test_partial_failure_exits_one(self):
        failed = report([FailureRecord(entity_type="user", entity_id="u1", cause="boom")])
        with patch.object(cli, "setup_logging"), \
             patch.object(cli, "run_daily_streak_job", AsyncMock(return_value=failed)):
            assert cli.main([]) == cli.EXIT_PARTIAL_FAILURE

    def test_configuration_error_exits_two(self):
        with patch.object(cli, "setup_logging"), \
             patch.object(
                 cli, "run_daily_streak_job",
                 AsyncMock(side_effect=ConfigurationError("DATABASE_URL is not set")),
             ):
            assert cli.main([]) == cli.EXIT_CONFIG_ERROR

    def test_now_defaults_to_none(self):
        with patch.object(cli, "setup_logging"), \
             patch.object(cli, "run_daily_streak_job", AsyncMock(return_value=report())) as run:
            cli.main([])

        assert run.await_args.kwargs["now"] is None

    def test_parse_instant_accepts_offsets(self):
        parsed = cli.parse_instant("2024-01-12T02:00:00-05:00")
        assert parsed.astimezone(timezone.utc) == RUN_AT

    def test_parse_instant_rejects_garbage(self):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_instant("tomorrow-ish")


class TestConfigValidation:

    def test_missing_database_url(self):
        config = Settings(_env_file=None, database_url="")
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_required_for_production()
        assert "DATABASE_URL is not set" in exc_info.value.message

    def test_sync_driver_rejected(self):
        config = Settings(_env_file=None, database_url="postgresql://u:p@db/streaks")
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_required_for_production()
        assert "async driver" in exc_info.value.message

    def test_all_problems_reported_together(self):
        config = Settings(
            _env_file=None, database_url="", retry_min_wait=5, retry_max_wait=1
        )
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_required_for_production()
        assert len(exc_info.value.context["problems"]) == 2

    def test_valid_settings_pass(self):
        config = Settings(
            _env_file=None, database_url="postgresql+asyncpg://u:p@db:5432/streaks"
        )
        config.validate_required_for_production()
        assert not config.is_sqlite

    def test_log_level_is_normalised(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_cors_origins_split(self):
        config = Settings(_env_file=None, cors_origins="http://a, http://b,")
        assert config.cors_origins_list == ["http://a", "http://b"]
