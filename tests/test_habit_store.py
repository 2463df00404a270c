"""
Unit tests for HabitStore
Tests: load/backup fallback, check-ins, lifecycle, tune-up, export/import, reset
"""
import json

import pytest

from habit_stacker.core.exceptions import CheckInValidationError, HabitValidationError
from habit_stacker.Modules.habit_module.habit_models import (
    HabitData, HabitState, CheckInState, HabitType, SystemUpdateField,
)
from habit_stacker.Modules.habit_module.checkin_logic import derive_state, dedupe_by_date


@pytest.fixture
def active_store(store, sample_system):
    """Store with a designed and activated habit"""
    store.design_habit(sample_system)
    store.activate_habit()
    return store


class TestLoadSave:
    """Test persistence and backup fallback"""

    def test_fresh_store_loads_install_record(self, store):
        data = store.load()
        assert data.state == HabitState.INSTALL
        assert data.reps_count == 0
        assert data.check_ins == []
        assert data.needs_restore_confirmation is False

    def test_save_writes_primary_backup_and_timestamp(self, store, database):
        assert store.save(HabitData(state=HabitState.DESIGNED))

        assert database.get_value(store.STORAGE_KEY) == database.get_value(store.BACKUP_KEY)
        assert store.get_backup_timestamp() is not None
        assert store.load().state == HabitState.DESIGNED

    def test_corrupt_primary_falls_back_to_backup(self, store, database):
        store.save(HabitData(state=HabitState.ACTIVE, reps_count=4))
        database.set_value(store.STORAGE_KEY, "{not json")

        data = store.load()

        assert data.state == HabitState.ACTIVE
        assert data.reps_count == 4
        assert data.needs_restore_confirmation is True

    def test_primary_without_state_is_unreadable(self, store, database):
        store.save(HabitData(state=HabitState.ACTIVE))
        database.set_value(store.STORAGE_KEY, json.dumps({'repsCount': 3}))
        assert store.load().needs_restore_confirmation is True

    def test_both_slots_unreadable_gives_fresh_record(self, store, database):
        database.set_value(store.STORAGE_KEY, "garbage")
        database.set_value(store.BACKUP_KEY, "garbage")

        data = store.load()

        assert data.state == HabitState.INSTALL
        assert data.needs_restore_confirmation is False

    def test_restore_from_backup_clears_flag(self, store, database):
        store.save(HabitData(state=HabitState.ACTIVE, reps_count=2))
        database.set_value(store.STORAGE_KEY, "{broken")

        restored = store.restore_from_backup()

        assert restored is not None
        assert restored.reps_count == 2
        assert store.load().needs_restore_confirmation is False

    def test_restore_without_backup_returns_none(self, store):
        assert store.restore_from_backup() is None

    def test_restore_flag_is_never_persisted(self, store, database):
        store.save(HabitData(state=HabitState.ACTIVE))
        database.set_value(store.STORAGE_KEY, "{broken")
        flagged = store.load()
        assert flagged.needs_restore_confirmation

        store.save(flagged)

        assert "_needsRestoreConfirmation" not in json.loads(database.get_value(store.STORAGE_KEY))

    def test_restore_flag_key_stripped_on_parse(self):
        data = HabitData.from_dict({'state': 'active', '_needsRestoreConfirmation': True})
        assert data.needs_restore_confirmation is False
        assert "_needsRestoreConfirmation" not in data.to_dict()

    def test_legacy_recovery_state_loads_as_missed(self, store, database):
        database.set_value(store.STORAGE_KEY, json.dumps({'state': 'recovery', 'repsCount': 1}))
        assert store.load().state == HabitState.MISSED

    def test_unknown_fields_survive_round_trip(self, store, database):
        database.set_value(store.STORAGE_KEY, json.dumps({
            'state': 'active',
            'futureField': {'x': 1},
            'checkIns': [{'id': 'c1', 'date': '2024-03-01', 'checkedInAt': '2024-03-01T08:00:00Z',
                          'triggerOccurred': True, 'actionTaken': True, 'mood': 'great'}],
        }))

        store.update({'reps_count': 1})
        saved = json.loads(database.get_value(store.STORAGE_KEY))

        assert saved['futureField'] == {'x': 1}
        assert saved['checkIns'][0]['mood'] == 'great'


class TestHooks:
    """Test save and clear hooks"""

    def test_save_hook_receives_copy(self, store):
        received = []
        store.set_on_save_hook(received.append)

        data = HabitData(state=HabitState.DESIGNED)
        store.save(data)
        received[0].reps_count = 99

        assert len(received) == 1
        assert store.load().reps_count == 0

    def test_failing_save_hook_does_not_break_save(self, store):
        def broken_hook(_data):
            raise RuntimeError("network down")

        store.set_on_save_hook(broken_hook)
        assert store.save(HabitData(state=HabitState.DESIGNED))
        assert store.load().state == HabitState.DESIGNED

    def test_unregistered_hook_not_called(self, store):
        received = []
        store.set_on_save_hook(received.append)
        store.set_on_save_hook(None)
        store.save(HabitData())
        assert received == []


class TestCheckIns:
    """Test logging check-ins"""

    def test_completed_check_in_counts_rep(self, active_store):
        data = active_store.log_check_in(True, True, date="2024-03-01", difficulty_rating=2)

        assert data.reps_count == 1
        assert data.last_done_date == "2024-03-01"
        assert data.state == HabitState.ACTIVE
        assert data.last_active_date is not None
        assert data.check_ins[0].difficulty_rating == 2

    def test_first_rep_on_designed_habit_activates_it(self, store, sample_system):
        store.design_habit(sample_system)

        data = store.log_check_in(True, True, date="2024-03-01")

        assert data.state == HabitState.ACTIVE
        assert data.created_at is not None

    def test_same_day_edit_keeps_single_entry_and_id(self, active_store):
        first = active_store.log_check_in(True, True, date="2024-03-01")
        second = active_store.log_check_in(True, True, date="2024-03-01", note="again")

        assert second.reps_count == 1
        assert len(dedupe_by_date(second.check_ins)) == 1
        assert second.check_ins[0].id == first.check_ins[0].id
        assert second.check_ins[0].note == "again"

    def test_missed_check_in_moves_to_missed(self, active_store):
        data = active_store.log_check_in(True, False, date="2024-03-01", miss_reason="too tired")

        assert data.state == HabitState.MISSED
        assert data.missed_date == "2024-03-01"
        assert data.reps_count == 0

    def test_no_trigger_leaves_state_unchanged(self, active_store):
        data = active_store.log_check_in(False, False, date="2024-03-01")
        assert data.state == HabitState.ACTIVE
        assert data.reps_count == 0

    def test_editing_missed_to_completed_awards_rep(self, active_store):
        active_store.log_check_in(True, False, date="2024-03-01")
        data = active_store.log_check_in(True, True, date="2024-03-01")

        assert data.reps_count == 1
        assert data.state == HabitState.ACTIVE
        assert data.missed_date is None

    def test_editing_rep_to_miss_keeps_reps(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-01")
        data = active_store.log_check_in(True, False, date="2024-03-01")

        assert data.reps_count == 1
        assert data.last_done_date is None

    def test_action_without_trigger_rejected_before_write(self, active_store):
        before = active_store.load()

        with pytest.raises(CheckInValidationError):
            active_store.log_check_in(False, True, date="2024-03-01")

        after = active_store.load()
        assert after.check_ins == before.check_ins
        assert after.reps_count == before.reps_count

    def test_bad_difficulty_rejected(self, active_store):
        with pytest.raises(CheckInValidationError):
            active_store.log_check_in(True, True, date="2024-03-01", difficulty_rating=7)
        assert active_store.load().check_ins == []

    def test_unknown_check_in_field_rejected(self, active_store):
        with pytest.raises(HabitValidationError):
            active_store.log_check_in(True, True, date="2024-03-01", mood="great")

    def test_backfill_does_not_change_state(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-05")

        data = active_store.log_check_in(True, False, date="2024-03-02")

        assert data.state == HabitState.ACTIVE
        assert data.missed_date is None
        assert data.last_done_date == "2024-03-05"

    def test_backfilled_rep_counts(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-05")
        data = active_store.log_check_in(True, True, date="2024-03-03")

        assert data.reps_count == 2
        assert data.last_done_date == "2024-03-05"

    def test_recent_check_ins_and_stats(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-01")
        active_store.log_check_in(True, False, date="2024-03-08")
        active_store.log_check_in(True, True, date="2024-03-09")

        recent = active_store.get_recent_check_ins(days=7, today="2024-03-09")
        stats = active_store.get_check_in_stats(days=7, today="2024-03-09")

        assert [c.date for c in recent] == ["2024-03-08", "2024-03-09"]
        assert (stats.completed, stats.missed, stats.total) == (1, 1, 2)
        assert active_store.get_today_check_in("2024-03-09").action_taken is True
        assert active_store.get_today_check_in("2024-03-10") is None


class TestRecovery:
    """Test recovery flow after a miss"""

    def test_complete_recovery_awards_rep(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-01")
        active_store.log_check_in(True, False, date="2024-03-02")

        data = active_store.complete_recovery()

        assert data.reps_count == 2
        assert data.state == HabitState.ACTIVE
        assert data.missed_date is None
        assert data.last_done_date == "2024-03-02"
        day = dedupe_by_date(data.check_ins)["2024-03-02"]
        assert derive_state(day) == CheckInState.RECOVERED
        assert day.recovery_offered is True

    def test_recovery_behind_later_no_trigger_day_reactivates(self, store, sample_system):
        store.design_habit(sample_system)
        store.log_check_in(True, True, date="2024-03-01")
        store.log_check_in(True, False, date="2024-03-02")
        store.log_check_in(False, False, date="2024-03-03")
        assert store.load().state == HabitState.MISSED

        data = store.complete_recovery()

        assert data.reps_count == 2
        assert data.state == HabitState.ACTIVE
        assert data.missed_date is None
        assert derive_state(dedupe_by_date(data.check_ins)["2024-03-02"]) == CheckInState.RECOVERED

    def test_backfill_of_other_day_keeps_missed_state(self, active_store):
        active_store.log_check_in(True, False, date="2024-03-05")

        data = active_store.log_check_in(True, True, date="2024-03-01")

        assert data.state == HabitState.MISSED
        assert data.missed_date == "2024-03-05"
        assert data.reps_count == 1

    def test_complete_recovery_without_miss_is_noop(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-01")
        data = active_store.complete_recovery(date="2024-03-01")
        assert data.reps_count == 1

    def test_skip_recovery(self, active_store):
        active_store.log_check_in(True, False, date="2024-03-02")

        data = active_store.skip_recovery()

        assert data.state == HabitState.ACTIVE
        assert data.missed_date is None
        assert data.reps_count == 0
        assert data.check_ins[0].recovery_completed is False

    def test_skip_recovery_outside_missed_is_noop(self, active_store):
        data = active_store.skip_recovery()
        assert data.state == HabitState.ACTIVE


class TestLifecycle:
    """Test guarded lifecycle transitions"""

    def test_design_and_activate(self, store, sample_system):
        designed = store.design_habit(sample_system)
        assert designed.state == HabitState.DESIGNED
        assert designed.system.anchor == sample_system.anchor

        active = store.activate_habit()
        assert active.state == HabitState.ACTIVE
        assert active.created_at is not None

    def test_graduate_requires_active(self, store, sample_system):
        store.design_habit(sample_system)
        assert store.graduate_habit().state == HabitState.DESIGNED

        store.activate_habit()
        graduated = store.graduate_habit()
        assert graduated.state == HabitState.MAINTAINED
        assert graduated.graduated_at is not None

    def test_pause_and_resume(self, active_store):
        paused = active_store.pause_habit("travel", reentry_plan="Start Monday")
        assert paused.state == HabitState.PAUSED
        assert paused.pause_reason == "travel"

        resumed = active_store.resume_habit()
        assert resumed.state == HabitState.ACTIVE
        assert resumed.paused_at is None

    def test_resume_when_not_paused_is_noop(self, active_store):
        saves = []
        active_store.set_on_save_hook(saves.append)
        assert active_store.resume_habit().state == HabitState.ACTIVE
        assert saves == []

    def test_check_in_does_not_unpause(self, active_store):
        active_store.pause_habit("sick")
        data = active_store.log_check_in(True, True, date="2024-03-01")
        assert data.state == HabitState.PAUSED
        assert data.reps_count == 1

    def test_update_merges_known_fields(self, store):
        data = store.update({'state': 'designed', 'last_reflection_date': '2024-03-01'})
        assert data.state == HabitState.DESIGNED
        assert data.updated_at is not None
        assert store.load().last_reflection_date == '2024-03-01'

    def test_update_rejects_unknown_field(self, store):
        with pytest.raises(HabitValidationError):
            store.update({'streak': 10})


class TestTuneUp:
    """Test system tune-up operations"""

    def test_toolkit_without_system_rejected(self, store):
        with pytest.raises(HabitValidationError):
            store.update_system_toolkit(tiny_version="One line")

    def test_toolkit_bumps_tune_metadata(self, active_store):
        data = active_store.update_system_toolkit(environment_prime="Journal on the table")

        assert data.system.environment_prime == "Journal on the table"
        assert data.system.tiny_version == "Open the journal"
        assert data.system.tune_count == 1
        assert data.system.tuned_at is not None

    def test_timing_update_targets_anchor_time(self, active_store):
        result = active_store.apply_system_update(SystemUpdateField.TIMING, "08:30")

        assert result.success
        assert result.previous_value == "07:00"
        assert active_store.load().system.anchor_time == "08:30"

    def test_timing_update_targets_check_in_time_for_reactive(self, store, sample_system):
        sample_system.habit_type = HabitType.REACTIVE
        store.design_habit(sample_system)

        store.apply_system_update("timing", "21:00")

        system = store.load().system
        assert system.check_in_time == "21:00"
        assert system.anchor_time == "07:00"

    def test_update_without_system_fails(self, store):
        result = store.apply_system_update(SystemUpdateField.ANCHOR, "After lunch")
        assert result.success is False

    def test_none_update_changes_nothing(self, active_store):
        before = active_store.load().system
        result = active_store.apply_system_update(SystemUpdateField.NONE, "")
        assert result.success
        assert active_store.load().system == before


class TestExportImportReset:
    """Test export, import and reset"""

    def test_export_reset_import_restores_record(self, active_store):
        active_store.log_check_in(True, True, date="2024-03-01", note="first")
        active_store.log_check_in(True, False, date="2024-03-02")
        before_reset = active_store.load()

        exported = active_store.export_habit_data()
        fresh = active_store.reset_habit_data()
        assert fresh.state == HabitState.INSTALL
        assert active_store.load().state == HabitState.INSTALL

        imported = active_store.import_habit_data(exported)

        assert imported == before_reset
        assert active_store.load() == before_reset

    def test_import_rejects_invalid_payload(self, store):
        with pytest.raises(HabitValidationError):
            store.import_habit_data('{"repsCount": 2}')

    def test_import_rejects_invalid_check_in(self, store):
        payload = json.dumps({'state': 'active', 'checkIns': [
            {'id': 'c', 'date': '2024-03-01', 'checkedInAt': '2024-03-01T08:00:00Z',
             'triggerOccurred': False, 'actionTaken': True},
        ]})
        with pytest.raises(CheckInValidationError):
            store.import_habit_data(payload)

    def test_reset_fires_clear_hook_and_removes_slots(self, active_store, database):
        cleared = []
        active_store.set_on_clear_hook(lambda: cleared.append(True))

        active_store.reset_habit_data()

        assert cleared == [True]
        assert database.get_value(active_store.STORAGE_KEY) is None
        assert database.get_value(active_store.BACKUP_KEY) is None
        assert active_store.get_backup_timestamp() is None

    def test_clear_backup(self, active_store, database):
        active_store.clear_backup()
        assert database.get_value(active_store.BACKUP_KEY) is None
        assert active_store.load().state == HabitState.ACTIVE
