"""
User State - projekcja rekordu nawyku na stan ekranu

Czysta funkcja snapshotu HabitData i daty "dziś". Kolejność reguł jest
kontraktem: pierwsza pasująca wygrywa (długa nieobecność sprawdzana
przed wczorajszym missem).
"""
from enum import Enum
from typing import Optional

from ...utils.date_utils import get_local_date_string, get_yesterday, days_between
from .habit_models import HabitData, HabitState
from .checkin_logic import dedupe_by_date, effective_check_ins

REENTRY_THRESHOLD_DAYS = 7


class UserState(Enum):
    NEW_USER = "new_user"
    MID_CONVERSATION = "mid_conversation"
    SYSTEM_DESIGNED = "system_designed"
    ACTIVE_TODAY = "active_today"
    COMPLETED_TODAY = "completed_today"
    MISSED_YESTERDAY = "missed_yesterday"
    NEEDS_TUNEUP = "needs_tuneup"
    NEEDS_REENTRY = "needs_reentry"


def _has_unfinished_intake(habit_data: HabitData) -> bool:
    intake = habit_data.intake_state
    return isinstance(intake, dict) and not intake.get('isComplete')


def project(
    habit_data: Optional[HabitData],
    today: Optional[str] = None,
    reentry_threshold_days: int = REENTRY_THRESHOLD_DAYS
) -> UserState:
    """
    Wyznacz stan użytkownika.

    Args:
        habit_data: Snapshot rekordu (None = brak danych)
        today: Data YYYY-MM-DD (domyślnie dziś, czas lokalny)
        reentry_threshold_days: Próg długiej nieobecności
    """
    if habit_data is None:
        return UserState.NEW_USER

    if (habit_data.state == HabitState.INSTALL and habit_data.system is None
            and habit_data.plan_details is None and not _has_unfinished_intake(habit_data)):
        return UserState.NEW_USER

    if _has_unfinished_intake(habit_data):
        return UserState.MID_CONVERSATION

    if habit_data.state == HabitState.DESIGNED or (habit_data.system is not None and habit_data.reps_count == 0):
        return UserState.SYSTEM_DESIGNED

    today = today or get_local_date_string()
    yesterday = get_yesterday(today)
    last_done = habit_data.last_done_date

    if habit_data.state == HabitState.PAUSED:
        return UserState.NEEDS_REENTRY
    if last_done and days_between(last_done, today) >= reentry_threshold_days:
        return UserState.NEEDS_REENTRY

    has_yesterday_entry = yesterday in dedupe_by_date(effective_check_ins(habit_data))
    if habit_data.state == HabitState.MISSED:
        return UserState.MISSED_YESTERDAY
    if last_done and last_done < yesterday and not has_yesterday_entry:
        return UserState.MISSED_YESTERDAY

    if last_done == today:
        return UserState.COMPLETED_TODAY

    tuned = habit_data.system is not None and habit_data.system.tuned_at is not None
    if habit_data.reps_count == 1 and habit_data.state == HabitState.ACTIVE and not tuned:
        return UserState.NEEDS_TUNEUP

    return UserState.ACTIVE_TODAY


def route_for_state(state: UserState) -> str:
    """Zalecana ścieżka ekranu dla stanu"""
    if state == UserState.MID_CONVERSATION:
        return "/setup"
    if state == UserState.MISSED_YESTERDAY:
        return "/recovery"
    if state == UserState.NEEDS_REENTRY:
        return "/reentry"
    return "/"
