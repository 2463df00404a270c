"""
Unit tests for the command line entry point
Tests: reset with and without the remote row, status thresholds
"""
import pytest

import main
from habit_stacker.core.config import config
from habit_stacker.core.local_database import KeyValueDatabase
from habit_stacker.Modules.habit_module.habit_models import HabitData, HabitState
from habit_stacker.Modules.habit_module.habit_store import HabitStore
from habit_stacker.utils.date_utils import add_days, get_local_date_string, now_iso


USER_ID = "u1"
TABLE = "habit_data"


@pytest.fixture
def cli(tmp_path, monkeypatch, remote):
    """Point the CLI at a temporary data dir and a fake remote"""
    monkeypatch.setattr(config, "DATA_DIR", tmp_path)
    monkeypatch.setattr(config, "LOGS_DIR", tmp_path / "logs")
    monkeypatch.setattr(config, "LOCAL_DB_PATH", tmp_path / "cli.db")
    monkeypatch.setattr(config, "REMOTE_API_URL", "https://example.supabase.co")
    monkeypatch.setattr(config, "SYNC_DEBOUNCE_SECONDS", 10)
    monkeypatch.setattr(main, "setup_logging", lambda: None)
    monkeypatch.setattr(main, "is_network_available", lambda: True)
    monkeypatch.setattr(main, "create_api_client", lambda **kwargs: remote)
    return HabitStore(KeyValueDatabase(config.LOCAL_DB_PATH))


class TestResetCommand:
    """Test reset with and without --user-id"""

    def test_reset_with_user_deletes_remote_row(self, cli, remote):
        cli.save(HabitData(state=HabitState.ACTIVE, reps_count=5))
        remote.rows[(TABLE, USER_ID)] = HabitData(state=HabitState.ACTIVE, reps_count=5).to_dict()

        assert main.main(["reset", "--user-id", USER_ID, "--token", "t"]) == 0

        assert remote.deletes == [(TABLE, USER_ID)]
        assert (TABLE, USER_ID) not in remote.rows
        assert cli.load().state == HabitState.INSTALL

    def test_sync_after_reset_does_not_restore_old_record(self, cli, remote):
        cli.save(HabitData(state=HabitState.ACTIVE, reps_count=5))
        remote.rows[(TABLE, USER_ID)] = HabitData(state=HabitState.ACTIVE, reps_count=5).to_dict()

        main.main(["reset", "--user-id", USER_ID])
        main.main(["sync", "--user-id", USER_ID])

        data = cli.load()
        assert data.state == HabitState.INSTALL
        assert data.reps_count == 0

    def test_reset_without_user_is_local_only(self, cli, remote, capsys):
        cli.save(HabitData(state=HabitState.ACTIVE))
        remote.rows[(TABLE, USER_ID)] = {'state': 'active'}

        assert main.main(["reset"]) == 0

        assert remote.deletes == []
        assert (TABLE, USER_ID) in remote.rows
        assert cli.load().state == HabitState.INSTALL
        assert "remote row was not touched" in capsys.readouterr().out

    def test_failed_remote_delete_is_reported(self, cli, remote):
        remote.fail_delete = True
        cli.save(HabitData(state=HabitState.ACTIVE))

        assert main.main(["reset", "--user-id", USER_ID]) == 1
        assert cli.load().state == HabitState.INSTALL

    def test_offline_reset_with_user_keeps_local_data(self, cli, remote, monkeypatch):
        monkeypatch.setattr(main, "is_network_available", lambda: False)
        cli.save(HabitData(state=HabitState.ACTIVE, reps_count=3))

        assert main.main(["reset", "--user-id", USER_ID]) == 1

        assert remote.deletes == []
        assert cli.load().reps_count == 3


class TestStatusCommand:
    def test_reentry_threshold_read_from_config(self, cli, sample_system, monkeypatch, capsys):
        monkeypatch.setattr(config, "REENTRY_THRESHOLD_DAYS", 3)
        cli.save(HabitData(
            state=HabitState.ACTIVE,
            system=sample_system,
            reps_count=2,
            created_at=now_iso(),
            last_done_date=add_days(get_local_date_string(), -4),
        ))

        assert main.main(["status"]) == 0
        assert "needs_reentry" in capsys.readouterr().out
