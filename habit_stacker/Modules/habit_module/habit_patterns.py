"""
Habit Patterns - analiza historii check-inów

Tylko odczyt: redukuje zdeduplikowaną historię do statystyk (CheckInPatterns)
i generuje z nich krótkie wnioski coachingowe.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict
from loguru import logger

from ...utils.date_utils import parse_local_date
from .habit_models import CheckIn, CheckInState, HabitSystem, HabitType
from .checkin_logic import REP_STATES, derive_state, sorted_by_date

PATTERNS_UNLOCK_THRESHOLD = 7
DIFFICULTY_WINDOW = 7
DEFAULT_DIFFICULTY = 3.0
DAY_NAMES = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


@dataclass
class DayOfWeekStats:
    completed: int = 0
    missed: int = 0
    total: int = 0


@dataclass
class PatternTrends:
    """Ostatnie 7 vs poprzednie 7 wpisów"""
    response_rate_improving: bool = False
    trigger_occurrence_decreasing: bool = False
    difficulty_decreasing: bool = False


@dataclass
class CheckInPatterns:
    """Podsumowanie historii check-inów"""
    locked: bool = True
    total_check_ins: int = 0
    completed_count: int = 0
    missed_count: int = 0
    no_trigger_count: int = 0
    recovered_count: int = 0

    trigger_occurrence_rate: float = 0.0
    response_rate_when_triggered: float = 0.0
    recovery_rate: float = 0.0
    outcome_success_rate: float = 0.0

    current_streak: int = 0
    current_missed_streak: int = 0
    current_no_trigger_streak: int = 0
    longest_streak: int = 0

    day_of_week_stats: Dict[str, DayOfWeekStats] = field(
        default_factory=lambda: {day: DayOfWeekStats() for day in DAY_NAMES}
    )
    strong_days: List[str] = field(default_factory=list)
    weak_days: List[str] = field(default_factory=list)

    miss_reason_counts: Dict[str, int] = field(default_factory=dict)
    repeated_miss_reason: Optional[str] = None

    average_difficulty: float = DEFAULT_DIFFICULTY
    difficulty_trend: str = "stable"  # decreasing | stable | increasing
    trends: PatternTrends = field(default_factory=PatternTrends)

    is_first_rep: bool = False
    is_first_miss: bool = False
    is_first_recovery: bool = False
    just_completed_week1: bool = False


def analyze_patterns(
    check_ins: List[CheckIn],
    habit_type: HabitType = HabitType.TIME_ANCHORED,
    unlock_threshold: int = PATTERNS_UNLOCK_THRESHOLD
) -> CheckInPatterns:
    """
    Przeanalizuj historię check-inów.

    Args:
        check_ins: Surowa historia (deduplikowana tutaj)
        habit_type: Dla 'reactive' dni bez triggera nie przerywają serii
        unlock_threshold: Minimalna liczba dni do odblokowania wzorców

    Returns:
        CheckInPatterns; pusta historia daje neutralny, zablokowany wynik
    """
    entries = sorted_by_date(check_ins, descending=True)
    if not entries:
        return CheckInPatterns()

    reactive = habit_type == HabitType.REACTIVE
    states = [derive_state(c) for c in entries]
    total = len(entries)

    completed = states.count(CheckInState.COMPLETED)
    missed = states.count(CheckInState.MISSED)
    no_trigger = states.count(CheckInState.NO_TRIGGER)
    recovered = states.count(CheckInState.RECOVERED)
    triggered = total - no_trigger

    day_stats = _analyze_day_of_week(entries, states)
    strong_days, weak_days = _identify_strong_weak_days(day_stats)
    miss_reasons = _count_miss_reasons(entries)

    patterns = CheckInPatterns(
        locked=total < unlock_threshold,
        total_check_ins=total,
        completed_count=completed,
        missed_count=missed,
        no_trigger_count=no_trigger,
        recovered_count=recovered,
        trigger_occurrence_rate=triggered / total,
        response_rate_when_triggered=completed / triggered if triggered else 0.0,
        recovery_rate=recovered / (missed + recovered) if (missed + recovered) else 0.0,
        outcome_success_rate=_outcome_success_rate(entries),
        current_streak=_current_streak(states, reactive),
        current_missed_streak=_current_missed_streak(states),
        current_no_trigger_streak=_current_no_trigger_streak(states),
        longest_streak=_longest_streak(states, reactive),
        day_of_week_stats=day_stats,
        strong_days=strong_days,
        weak_days=weak_days,
        miss_reason_counts=miss_reasons,
        repeated_miss_reason=_find_repeated_reason(miss_reasons),
        average_difficulty=_average_difficulty(entries[:DIFFICULTY_WINDOW]),
        difficulty_trend=_difficulty_trend(entries),
        trends=_analyze_trends(entries),
        is_first_rep=completed == 1,
        is_first_miss=missed == 1,
        is_first_recovery=recovered == 1,
        just_completed_week1=total == 7,
    )
    logger.debug(f"[HABIT PATTERNS] Analyzed {total} days (locked={patterns.locked})")
    return patterns


def _current_streak(states: List[CheckInState], reactive: bool) -> int:
    """
    Seria completed/recovered od najnowszego dnia.

    Dzień 'recovered' mostkuje bezpośrednio starszy dzień 'missed' (ten,
    który odrabia) - taki miss nie liczy się i nie przerywa serii.
    """
    streak = 0
    bridge = False
    for state in states:
        if state in REP_STATES:
            streak += 1
            bridge = state == CheckInState.RECOVERED
        elif state == CheckInState.MISSED:
            if not bridge:
                break
            bridge = False
        elif not reactive:
            break
    return streak


def _current_missed_streak(states: List[CheckInState]) -> int:
    streak = 0
    for state in states:
        if state != CheckInState.MISSED:
            break
        streak += 1
    return streak


def _current_no_trigger_streak(states: List[CheckInState]) -> int:
    streak = 0
    for state in states:
        if state != CheckInState.NO_TRIGGER:
            break
        streak += 1
    return streak


def _longest_streak(states: List[CheckInState], reactive: bool) -> int:
    chronological = list(reversed(states))
    longest = 0
    current = 0
    for index, state in enumerate(chronological):
        if state in REP_STATES:
            current += 1
            longest = max(longest, current)
        elif state == CheckInState.MISSED:
            following = chronological[index + 1] if index + 1 < len(chronological) else None
            if following != CheckInState.RECOVERED:
                current = 0
        elif not reactive:
            current = 0
    return longest


def _analyze_day_of_week(entries: List[CheckIn], states: List[CheckInState]) -> Dict[str, DayOfWeekStats]:
    stats = {day: DayOfWeekStats() for day in DAY_NAMES}
    for check_in, state in zip(entries, states):
        day_stats = stats[DAY_NAMES[parse_local_date(check_in.date).weekday()]]
        day_stats.total += 1
        if state in REP_STATES:
            day_stats.completed += 1
        elif state == CheckInState.MISSED:
            day_stats.missed += 1
    return stats


def _identify_strong_weak_days(stats: Dict[str, DayOfWeekStats]):
    """Mocne: >=80% realizacji, słabe: <=40% i co najmniej jeden miss (min. 2 wpisy)"""
    strong_days = []
    weak_days = []
    for day, data in stats.items():
        if data.total < 2:
            continue
        completion_rate = data.completed / data.total
        if completion_rate >= 0.8:
            strong_days.append(day)
        elif completion_rate <= 0.4 and data.missed >= 1:
            weak_days.append(day)
    return strong_days, weak_days


def _count_miss_reasons(entries: List[CheckIn]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for check_in in entries:
        if check_in.miss_reason:
            reason = check_in.miss_reason.strip().lower()
            counts[reason] = counts.get(reason, 0) + 1
    return counts


def _find_repeated_reason(counts: Dict[str, int]) -> Optional[str]:
    best_reason = None
    best_count = 1  # Musi wystąpić co najmniej 2 razy
    for reason, count in counts.items():
        if count > best_count:
            best_reason, best_count = reason, count
    return best_reason


def _ratings(entries: List[CheckIn]) -> List[int]:
    return [c.difficulty_rating for c in entries if c.difficulty_rating is not None]


def _average_difficulty(entries: List[CheckIn]) -> float:
    ratings = _ratings(entries)
    if not ratings:
        return DEFAULT_DIFFICULTY
    return sum(ratings) / len(ratings)


def _difficulty_trend(entries: List[CheckIn]) -> str:
    ratings = _ratings(entries)
    if len(ratings) < 4:
        return "stable"

    midpoint = len(ratings) // 2
    recent = ratings[:midpoint]
    older = ratings[midpoint:]
    difference = sum(recent) / len(recent) - sum(older) / len(older)

    if difference <= -0.5:
        return "decreasing"
    if difference >= 0.5:
        return "increasing"
    return "stable"


def _response_rate(entries: List[CheckIn]) -> float:
    triggered = [c for c in entries if c.trigger_occurred]
    if not triggered:
        return 0.0
    return sum(1 for c in triggered if c.action_taken) / len(triggered)


def _analyze_trends(entries: List[CheckIn]) -> PatternTrends:
    recent = entries[:7]
    previous = entries[7:14]
    if len(entries) < 8 or len(previous) < 3:
        return PatternTrends()

    recent_trigger_rate = sum(1 for c in recent if c.trigger_occurred) / len(recent)
    previous_trigger_rate = sum(1 for c in previous if c.trigger_occurred) / len(previous)

    return PatternTrends(
        response_rate_improving=_response_rate(recent) > _response_rate(previous) + 0.1,
        trigger_occurrence_decreasing=recent_trigger_rate < previous_trigger_rate - 0.1,
        difficulty_decreasing=_average_difficulty(recent) < _average_difficulty(previous) - 0.3,
    )


def _outcome_success_rate(entries: List[CheckIn]) -> float:
    with_outcome = [c for c in entries if c.outcome_success is not None]
    if not with_outcome:
        return 0.0
    return sum(1 for c in with_outcome if c.outcome_success) / len(with_outcome)


# =============================================================================
# WNIOSKI I SUGESTIE
# =============================================================================

@dataclass
class PatternInsight:
    id: str
    type: str  # positive | neutral | warning
    content: str


@dataclass
class PatternSuggestion:
    id: str
    content: str
    action_type: str  # anchor | tiny_version | environment | timing | general
    action_label: str


@dataclass
class PatternAnalysisResult:
    insights: List[PatternInsight] = field(default_factory=list)
    suggestion: Optional[PatternSuggestion] = None


MAX_INSIGHTS = 3


def generate_pattern_insights(
    patterns: CheckInPatterns,
    system: Optional[HabitSystem],
    habit_type: HabitType = HabitType.TIME_ANCHORED
) -> PatternAnalysisResult:
    """
    Zamień statystyki na maksymalnie 3 wnioski i co najwyżej jedną sugestię.
    Kolejność: pozytywne, ostrzeżenia, neutralne.
    """
    insights: List[PatternInsight] = []
    suggestion: Optional[PatternSuggestion] = None
    total = patterns.total_check_ins
    response_pct = round(patterns.response_rate_when_triggered * 100)

    # Pozytywne
    if total >= 5 and patterns.response_rate_when_triggered >= 0.8:
        insights.append(PatternInsight('high_response', 'positive',
                                       f"{response_pct}% follow-through when triggered. Strong consistency."))
    if patterns.current_streak >= 3:
        insights.append(PatternInsight('streak', 'positive',
                                       f"{patterns.current_streak} in a row. The habit is taking hold."))
    if habit_type == HabitType.REACTIVE and patterns.current_no_trigger_streak >= 3:
        insights.append(PatternInsight(
            'no_trigger_streak', 'positive',
            f"{patterns.current_no_trigger_streak} nights with no trigger. The habit may be improving your baseline."))
    if patterns.difficulty_trend == "decreasing" and total >= 7:
        insights.append(PatternInsight('easier', 'positive', "Getting easier over time. The habit is settling in."))
    if patterns.missed_count + patterns.recovered_count >= 2 and patterns.recovery_rate >= 0.5:
        insights.append(PatternInsight(
            'good_recovery', 'positive',
            f"Recovered {round(patterns.recovery_rate * 100)}% of the time after misses. Good bounce-back."))
    if patterns.strong_days and total >= 7:
        insights.append(PatternInsight('strong_days', 'positive',
                                       f"{' and '.join(patterns.strong_days)} are your best days."))

    # Ostrzeżenia
    if patterns.weak_days and total >= 7:
        insights.append(PatternInsight('weak_days', 'warning',
                                       f"{' and '.join(patterns.weak_days)} tend to be harder."))
        suggestion = suggestion or PatternSuggestion(
            'weak_days_suggestion',
            f"Your {patterns.weak_days[0]} anchor might need adjustment. Consider a different trigger for these days.",
            'anchor', 'Adjust anchor')

    reason = patterns.repeated_miss_reason
    if reason:
        count = patterns.miss_reason_counts.get(reason, 0)
        insights.append(PatternInsight('repeated_miss', 'warning', f'"{reason}" has come up {count} times.'))
        suggestion = suggestion or _suggestion_for_miss_reason(reason, system)

    if patterns.average_difficulty >= 4 and total >= 5:
        insights.append(PatternInsight(
            'high_difficulty', 'warning',
            f"Average difficulty is {patterns.average_difficulty:.1f}. This might not be sustainable."))
        suggestion = suggestion or PatternSuggestion(
            'difficulty_suggestion',
            "Consider dropping to your tiny version for a week. Sustainable beats ambitious.",
            'tiny_version', 'Use tiny version')

    if total >= 5 and patterns.response_rate_when_triggered <= 0.5:
        insights.append(PatternInsight('low_response', 'warning',
                                       f"{response_pct}% follow-through. The system may need adjustment."))
        suggestion = suggestion or PatternSuggestion(
            'response_suggestion',
            "Something is blocking you. Let's look at your anchor and environment setup.",
            'environment', 'Update setup')

    if patterns.difficulty_trend == "increasing" and total >= 7:
        insights.append(PatternInsight('harder', 'warning',
                                       "Getting harder over time. The habit may need adjustment."))
        suggestion = suggestion or PatternSuggestion(
            'increasing_difficulty_suggestion',
            "The habit is feeling harder. This is a signal to simplify. Try your tiny version.",
            'tiny_version', 'Simplify habit')

    # Neutralne
    if patterns.just_completed_week1:
        insights.append(PatternInsight('week1_complete', 'neutral', "Week 1 complete. The hardest part is done."))
    if total >= 5 and patterns.missed_count == 0 and patterns.recovered_count == 0:
        insights.append(PatternInsight('no_misses', 'neutral',
                                       "No misses yet. When one happens, recovery is ready."))

    return PatternAnalysisResult(insights=insights[:MAX_INSIGHTS], suggestion=suggestion)


def _suggestion_for_miss_reason(reason: str, system: Optional[HabitSystem]) -> PatternSuggestion:
    lower = reason.lower()

    if 'tired' in lower or 'energy' in lower:
        return PatternSuggestion(
            'tired_suggestion',
            "Tiredness keeps showing up. Consider: is the anchor fighting your energy levels?",
            'timing', 'Adjust timing')

    if 'forgot' in lower:
        return PatternSuggestion(
            'forgot_suggestion',
            "Forgetting suggests the anchor isn't visible enough. Add a physical cue to your environment.",
            'environment', 'Update setup')

    if 'time' in lower or 'busy' in lower:
        if system is not None and system.tiny_version:
            content = f'When time is tight, "{system.tiny_version}" should kick in automatically. Is it small enough?'
        else:
            content = "When time is tight, your tiny version should kick in automatically. Is it small enough?"
        return PatternSuggestion('time_suggestion', content, 'tiny_version', 'Shrink tiny version')

    return PatternSuggestion(
        'general_suggestion',
        "This barrier keeps appearing. Let's address it in your weekly reflection.",
        'general', 'Start reflection')


def is_patterns_unlocked(patterns: Optional[CheckInPatterns]) -> bool:
    return patterns is not None and not patterns.locked


def patterns_progress(check_in_count: int, required: int = PATTERNS_UNLOCK_THRESHOLD) -> Dict[str, int]:
    """Postęp do odblokowania wzorców"""
    current = min(check_in_count, required)
    return {
        'current': current,
        'required': required,
        'percentage': round(current / required * 100),
    }
