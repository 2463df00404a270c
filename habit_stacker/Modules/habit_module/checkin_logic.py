"""
Check-in Logic - czyste funkcje na check-inach

- derive_state: surowe sygnały dnia -> CheckInState
- dedupe_by_date: JEDYNE miejsce, gdzie rozstrzygamy "ostatni wpis dla daty wygrywa"
- recalculate_stats, validate_check_in, summarize_check_ins
"""
import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ...core.exceptions import CheckInValidationError
from ...utils.date_utils import get_local_date_string, parse_local_date, parse_datetime_field
from .habit_models import CheckIn, CheckInState, HabitData, RepLog, RepLogType

REP_STATES = (CheckInState.COMPLETED, CheckInState.RECOVERED)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class CheckInStats:
    """Liczniki stanów dla okresu"""
    completed: int = 0
    missed: int = 0
    no_trigger: int = 0
    recovered: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {
            'completed': self.completed,
            'missed': self.missed,
            'noTrigger': self.no_trigger,
            'recovered': self.recovered,
            'total': self.total,
        }


def derive_state(check_in: CheckIn) -> CheckInState:
    """Wylicz kanoniczny stan dnia (funkcja totalna, bez I/O)"""
    if not check_in.trigger_occurred:
        return CheckInState.NO_TRIGGER
    if check_in.action_taken:
        return CheckInState.COMPLETED
    if check_in.recovery_completed:
        return CheckInState.RECOVERED
    return CheckInState.MISSED


def is_rep(check_in: Optional[CheckIn]) -> bool:
    return check_in is not None and derive_state(check_in) in REP_STATES


def _checked_in_sort_key(check_in: CheckIn) -> datetime:
    return parse_datetime_field(check_in.checked_in_at) or _EPOCH


def dedupe_by_date(check_ins: List[CheckIn]) -> Dict[str, CheckIn]:
    """
    Dla każdej daty wybierz wpis z najpóźniejszym checkedInAt.
    Przy remisie wygrywa wpis dodany później.

    Returns:
        Słownik data -> CheckIn
    """
    latest: Dict[str, Tuple[datetime, int, CheckIn]] = {}
    for index, check_in in enumerate(check_ins):
        key = (_checked_in_sort_key(check_in), index)
        current = latest.get(check_in.date)
        if current is None or key >= current[:2]:
            latest[check_in.date] = (key[0], key[1], check_in)
    return {day: entry[2] for day, entry in latest.items()}


def sorted_by_date(check_ins: List[CheckIn], descending: bool = True) -> List[CheckIn]:
    """Zdeduplikowana historia posortowana po dacie"""
    deduped = dedupe_by_date(check_ins)
    return [deduped[day] for day in sorted(deduped, reverse=descending)]


def validate_check_in(check_in: CheckIn) -> None:
    """
    Sprawdź niezmienniki check-inu.

    Raises:
        CheckInValidationError: actionTaken bez triggerOccurred albo trudność spoza 1-5
    """
    if check_in.action_taken and not check_in.trigger_occurred:
        raise CheckInValidationError(
            "actionTaken requires triggerOccurred", field_name="action_taken"
        )

    rating = check_in.difficulty_rating
    if rating is not None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise CheckInValidationError(
                f"difficultyRating must be an integer 1-5, got: {rating}",
                field_name="difficulty_rating",
            )

    try:
        parse_local_date(check_in.date)
    except (TypeError, ValueError) as e:
        raise CheckInValidationError(f"Invalid check-in date: {check_in.date}", field_name="date") from e


def recalculate_stats(check_ins: List[CheckIn]) -> Tuple[int, Optional[str]]:
    """
    Przelicz liczbę powtórzeń i ostatnią datę powtórzenia z historii.

    Returns:
        (reps_count, last_done_date)
    """
    rep_dates = [day for day, c in dedupe_by_date(check_ins).items() if is_rep(c)]
    return len(rep_dates), max(rep_dates) if rep_dates else None


def summarize_check_ins(check_ins: List[CheckIn]) -> CheckInStats:
    stats = CheckInStats()
    for check_in in dedupe_by_date(check_ins).values():
        state = derive_state(check_in)
        if state == CheckInState.COMPLETED:
            stats.completed += 1
        elif state == CheckInState.MISSED:
            stats.missed += 1
        elif state == CheckInState.NO_TRIGGER:
            stats.no_trigger += 1
        elif state == CheckInState.RECOVERED:
            stats.recovered += 1
        stats.total += 1
    return stats


def rep_logs_to_check_ins(rep_logs: List[RepLog]) -> List[CheckIn]:
    """
    Zamień stary log powtórzeń na check-iny (tylko do odczytu).

    Wpis 'recovery' oznacza dzień jako odzyskany, 'missed' jako pominięty.
    """
    converted = []
    for rep_log in rep_logs:
        timestamp = parse_datetime_field(rep_log.timestamp)
        if timestamp is None:
            continue
        converted.append(CheckIn(
            id=rep_log.id,
            date=get_local_date_string(timestamp),
            checked_in_at=rep_log.timestamp,
            trigger_occurred=True,
            action_taken=rep_log.type == RepLogType.DONE,
            recovery_completed=True if rep_log.type == RepLogType.RECOVERY else None,
            note=rep_log.note,
        ))
    return converted


def generate_check_in_id() -> str:
    return f"checkin-{uuid.uuid4()}"


def effective_check_ins(habit_data: HabitData) -> List[CheckIn]:
    """Historia check-inów; dla starych rekordów wyliczana z repLogs"""
    if habit_data.check_ins:
        return list(habit_data.check_ins)
    return rep_logs_to_check_ins(habit_data.rep_logs)
