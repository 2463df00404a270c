"""
Habit Progression - etapy pierwszych tygodni i gotowość do graduacji

Etapy liczone są w dniach kalendarzowych od createdAt (nie od liczby powtórzeń).
Graduacja jest tylko sugestią - przejście w 'maintained' zawsze wymaga
potwierdzenia użytkownika (HabitStore.graduate_habit).
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from ...utils.date_utils import add_days, get_local_date_string, parse_datetime_field
from .habit_models import HabitData
from .checkin_logic import dedupe_by_date, effective_check_ins, is_rep


@dataclass(frozen=True)
class StageInfo:
    index: int
    name: str
    description: str
    success_criteria: str


STAGES = (
    StageInfo(0, "Show Up", "Just do the action. Don't optimize.",
              "Success = doing it, regardless of quality."),
    StageInfo(1, "Protect the Routine", "Notice what threatens it. Recover quickly.",
              "Success = recovering quickly from misses."),
    StageInfo(2, "Add the Reward", "Link the habit to something you enjoy.",
              "Success = looking forward to the routine."),
    StageInfo(3, "Reflect & Adjust", "Is this the right habit? Time to tune.",
              "Success = honest assessment, one adjustment."),
)
STAGE_BOUNDARIES = (7, 14, 21)

GRADUATION_MIN_WEEKS = 4
GRADUATION_MIN_COMPLETION = 0.8
GRADUATION_MAX_DIFFICULTY = 2.0


def _days_since(timestamp: str, now: Optional[datetime] = None) -> int:
    created = parse_datetime_field(timestamp)
    if created is None:
        return 0
    now = (now or datetime.now()).astimezone()
    return int((now - created).total_seconds() // 86400)


def detect_stage(created_at: Optional[str], now: Optional[datetime] = None) -> StageInfo:
    """Etap na podstawie pełnych dni od createdAt"""
    if not created_at:
        return STAGES[0]
    days = _days_since(created_at, now)
    stage_index = sum(1 for boundary in STAGE_BOUNDARIES if days >= boundary)
    return STAGES[stage_index]


def should_show_stage_transition(
    created_at: Optional[str],
    last_stage_shown_at: Optional[str] = None,
    now: Optional[datetime] = None
) -> bool:
    """True w ciągu doby po przekroczeniu granicy etapu, jeśli nie pokazano w ostatnich 24h"""
    if not created_at:
        return False

    days = _days_since(created_at, now)
    if days not in STAGE_BOUNDARIES:
        return False

    if last_stage_shown_at:
        shown = parse_datetime_field(last_stage_shown_at)
        if shown is not None:
            hours_since_shown = ((now or datetime.now()).astimezone() - shown).total_seconds() / 3600
            if hours_since_shown < 24:
                return False
    return True


@dataclass
class GraduationCriterion:
    label: str
    met: bool
    detail: str


@dataclass
class GraduationAssessment:
    ready: bool
    criteria: List[GraduationCriterion] = field(default_factory=list)
    summary: str = ""


def assess_graduation(
    habit_data: HabitData,
    today: Optional[str] = None,
    now: Optional[datetime] = None
) -> GraduationAssessment:
    """
    Oceń gotowość do graduacji:
    - 4+ tygodnie od createdAt
    - >=80% realizacji dni z triggerem w ostatnich 14 dniach
    - średnia trudność <=2 w ostatnich 7 dniach (domyślnie 3)
    """
    today = today or get_local_date_string(now)
    deduped = dedupe_by_date(effective_check_ins(habit_data))

    weeks_active = _days_since(habit_data.created_at, now) // 7 if habit_data.created_at else 0
    duration_met = weeks_active >= GRADUATION_MIN_WEEKS

    cutoff_14 = add_days(today, -14)
    triggered = [c for day, c in deduped.items() if day >= cutoff_14 and c.trigger_occurred]
    completed = [c for c in triggered if is_rep(c)]
    completion_rate = len(completed) / len(triggered) if triggered else 0.0
    completion_met = completion_rate >= GRADUATION_MIN_COMPLETION

    cutoff_7 = add_days(today, -7)
    ratings = [c.difficulty_rating for day, c in deduped.items()
               if day >= cutoff_7 and c.difficulty_rating is not None]
    avg_difficulty = sum(ratings) / len(ratings) if ratings else 3.0
    difficulty_met = avg_difficulty <= GRADUATION_MAX_DIFFICULTY

    criteria = [
        GraduationCriterion("4+ weeks active", duration_met, f"{weeks_active} weeks"),
        GraduationCriterion("80%+ completion (last 2 weeks)", completion_met, f"{round(completion_rate * 100)}%"),
        GraduationCriterion("Avg difficulty <= 2 (last week)", difficulty_met, f"{avg_difficulty:.1f}/5"),
    ]
    ready = duration_met and completion_met and difficulty_met

    if ready:
        summary = "This habit has become automatic. You might be ready to graduate and start something new."
    else:
        unmet = ", ".join(c.label for c in criteria if not c.met)
        summary = f"Not quite ready yet. Still working on: {unmet}."

    return GraduationAssessment(ready=ready, criteria=criteria, summary=summary)
