"""
Pytest fixtures for Habit Stacker tests
"""
import pytest

from habit_stacker.core.local_database import KeyValueDatabase
from habit_stacker.core.remote_api_client import APIResponse
from habit_stacker.Modules.habit_module.habit_models import CheckIn, CheckInState, HabitSystem, HabitType
from habit_stacker.Modules.habit_module.habit_store import HabitStore
from habit_stacker.Modules.conversation_module.conversation_store import ConversationStore


class FakeRemoteClient:
    """In-memory replacement for RemoteAPIClient that records every call"""

    def __init__(self, rows=None, fail_fetch=False, fail_upsert=False, fail_delete=False):
        self.rows = dict(rows or {})
        self.fail_fetch = fail_fetch
        self.fail_upsert = fail_upsert
        self.fail_delete = fail_delete
        self.fetches = []
        self.upserts = []
        self.deletes = []

    def fetch_row(self, table, user_id):
        self.fetches.append((table, user_id))
        if self.fail_fetch:
            return APIResponse(success=False, error="connection refused")
        return APIResponse(success=True, data=self.rows.get((table, user_id)), status_code=200)

    def upsert_row(self, table, user_id, data):
        self.upserts.append((table, user_id, data))
        if self.fail_upsert:
            return APIResponse(success=False, error="HTTP 500", status_code=500)
        self.rows[(table, user_id)] = data
        return APIResponse(success=True, status_code=201)

    def delete_row(self, table, user_id):
        self.deletes.append((table, user_id))
        if self.fail_delete:
            return APIResponse(success=False, error="HTTP 500", status_code=500)
        self.rows.pop((table, user_id), None)
        return APIResponse(success=True, status_code=204)


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite key/value database per test"""
    return KeyValueDatabase(tmp_path / "habit_stacker_test.db")


@pytest.fixture
def store(database):
    return HabitStore(database)


@pytest.fixture
def conversation_store(database):
    return ConversationStore(database)


@pytest.fixture
def remote():
    return FakeRemoteClient()


@pytest.fixture
def sample_system():
    return HabitSystem(
        anchor="After I pour my morning coffee",
        action="Write one sentence in my journal",
        recovery="Write before lunch",
        why_it_fits=["Coffee happens every day"],
        habit_type=HabitType.TIME_ANCHORED,
        anchor_time="07:00",
        tiny_version="Open the journal",
    )


_STATE_SIGNALS = {
    CheckInState.COMPLETED: dict(trigger_occurred=True, action_taken=True),
    CheckInState.MISSED: dict(trigger_occurred=True, action_taken=False),
    CheckInState.RECOVERED: dict(trigger_occurred=True, action_taken=False, recovery_completed=True),
    CheckInState.NO_TRIGGER: dict(trigger_occurred=False, action_taken=False),
}


@pytest.fixture
def make_check_in():
    """Factory: make_check_in('2024-03-01', CheckInState.COMPLETED, difficulty_rating=2)"""
    counter = {'n': 0}

    def factory(date, state=CheckInState.COMPLETED, checked_in_at=None, **fields):
        counter['n'] += 1
        signals = dict(_STATE_SIGNALS[state])
        signals.update(fields)
        return CheckIn(
            id=f"checkin-{counter['n']}",
            date=date,
            checked_in_at=checked_in_at or f"{date}T20:00:00+00:00",
            **signals
        )

    return factory


@pytest.fixture
def remote_factory():
    """Build a FakeRemoteClient with failure switches"""
    return FakeRemoteClient
