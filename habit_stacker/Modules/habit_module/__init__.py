"""
Habit Module Package
Eksportuje główne klasy i funkcje modułu nawyku
"""

from .habit_models import (
    HabitState,
    CheckInState,
    HabitType,
    RepLogType,
    SystemUpdateField,
    CheckIn,
    HabitSystem,
    PlanDetails,
    RepLog,
    HabitData,
    SystemUpdateResult,
)
from .checkin_logic import derive_state, dedupe_by_date, validate_check_in, CheckInStats
from .habit_store import HabitStore
from .habit_patterns import (
    CheckInPatterns,
    PatternAnalysisResult,
    analyze_patterns,
    generate_pattern_insights,
)
from .habit_progression import detect_stage, should_show_stage_transition, assess_graduation
from .user_state import UserState, project, route_for_state
from .habit_sync_manager import HabitSyncManager

__all__ = [
    'HabitState',
    'CheckInState',
    'HabitType',
    'RepLogType',
    'SystemUpdateField',
    'CheckIn',
    'HabitSystem',
    'PlanDetails',
    'RepLog',
    'HabitData',
    'SystemUpdateResult',
    'derive_state',
    'dedupe_by_date',
    'validate_check_in',
    'CheckInStats',
    'HabitStore',
    'CheckInPatterns',
    'PatternAnalysisResult',
    'analyze_patterns',
    'generate_pattern_insights',
    'detect_stage',
    'should_show_stage_transition',
    'assess_graduation',
    'UserState',
    'project',
    'route_for_state',
    'HabitSyncManager',
]
