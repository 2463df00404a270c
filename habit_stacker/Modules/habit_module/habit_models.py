"""
Habit Models - modele danych rekordu nawyku

Format JSON (camelCase) jest wspólny dla slotu lokalnego i wiersza zdalnego,
więc nieznane klucze (zapisane przez innych klientów) trafiają do `extra`
i wracają przy serializacji bez zmian.
"""
import json
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from loguru import logger

from ...core.exceptions import HabitValidationError


class HabitState(Enum):
    """Stany cyklu życia nawyku"""
    INSTALL = "install"        # Brak zaprojektowanego nawyku
    DESIGNED = "designed"      # System zaprojektowany, brak powtórzeń
    ACTIVE = "active"
    MISSED = "missed"          # Trigger był, akcji nie było, brak recovery
    PAUSED = "paused"
    MAINTAINED = "maintained"  # Po graduacji


class CheckInState(Enum):
    """Kanoniczny wynik dnia (wyliczany, nigdy nie zapisywany)"""
    COMPLETED = "completed"
    RECOVERED = "recovered"
    MISSED = "missed"
    NO_TRIGGER = "no_trigger"


class HabitType(Enum):
    """Typ nawyku - decyduje o interpretacji dni bez triggera"""
    TIME_ANCHORED = "time_anchored"
    EVENT_ANCHORED = "event_anchored"
    REACTIVE = "reactive"


class RepLogType(Enum):
    """Typy wpisów w starym logu powtórzeń"""
    DONE = "done"
    MISSED = "missed"
    RECOVERY = "recovery"


class SystemUpdateField(Enum):
    """Pola systemu zmieniane przez tune-up"""
    ANCHOR = "anchor"
    ACTION = "action"
    TINY_VERSION = "tiny_version"
    RECOVERY = "recovery"
    TIMING = "timing"      # anchorTime albo checkInTime (reactive)
    NONE = "none"


# Stare wartości stanu zapisane przez poprzednie wersje klienta
_LEGACY_STATES = {
    "recovery": HabitState.MISSED,
}


def _split_known(data: Dict[str, Any], known_keys) -> Dict[str, Any]:
    """Zwróć klucze spoza known_keys (zachowywane w `extra`)"""
    return {k: v for k, v in data.items() if k not in known_keys}


def _put_optional(target: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


@dataclass
class CheckIn:
    """Pojedynczy dzienny wpis użytkownika"""
    id: str
    date: str                   # YYYY-MM-DD (czas lokalny)
    checked_in_at: str          # ISO timestamp, rozstrzyga wpisy z tej samej daty
    trigger_occurred: bool
    action_taken: bool
    recovery_offered: bool = False
    recovery_completed: Optional[bool] = None
    recovery_accepted: Optional[bool] = None
    difficulty_rating: Optional[int] = None  # 1-5
    miss_reason: Optional[str] = None
    note: Optional[str] = None
    outcome_success: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KEYS = (
        'id', 'date', 'checkedInAt', 'triggerOccurred', 'actionTaken', 'recoveryOffered',
        'recoveryCompleted', 'recoveryAccepted', 'difficultyRating', 'missReason', 'note',
        'outcomeSuccess',
    )

    def to_dict(self) -> dict:
        """Konwertuj na słownik JSON (camelCase)"""
        result = dict(self.extra)
        result.update({
            'id': self.id,
            'date': self.date,
            'checkedInAt': self.checked_in_at,
            'triggerOccurred': self.trigger_occurred,
            'actionTaken': self.action_taken,
            'recoveryOffered': self.recovery_offered,
        })
        _put_optional(result, 'recoveryCompleted', self.recovery_completed)
        _put_optional(result, 'recoveryAccepted', self.recovery_accepted)
        _put_optional(result, 'difficultyRating', self.difficulty_rating)
        _put_optional(result, 'missReason', self.miss_reason)
        _put_optional(result, 'note', self.note)
        _put_optional(result, 'outcomeSuccess', self.outcome_success)
        return result

    @staticmethod
    def from_dict(data: dict) -> 'CheckIn':
        return CheckIn(
            id=data['id'],
            date=data['date'],
            checked_in_at=data.get('checkedInAt') or "",
            trigger_occurred=bool(data.get('triggerOccurred', False)),
            action_taken=bool(data.get('actionTaken', False)),
            recovery_offered=bool(data.get('recoveryOffered', False)),
            recovery_completed=data.get('recoveryCompleted'),
            recovery_accepted=data.get('recoveryAccepted'),
            difficulty_rating=data.get('difficultyRating'),
            miss_reason=data.get('missReason'),
            note=data.get('note'),
            outcome_success=data.get('outcomeSuccess'),
            extra=_split_known(data, CheckIn._KEYS),
        )


@dataclass
class HabitSystem:
    """Zaprojektowany nawyk + toolkit z tune-upu"""
    anchor: str
    action: str
    recovery: str
    then: Optional[List[str]] = None
    why_it_fits: List[str] = field(default_factory=list)
    habit_type: Optional[HabitType] = None
    anchor_time: Optional[str] = None      # "07:00" dla time_anchored
    check_in_time: Optional[str] = None    # dla reactive
    identity: Optional[str] = None
    tiny_version: Optional[str] = None
    environment_prime: Optional[str] = None
    friction_reduced: Optional[str] = None
    tuned_at: Optional[str] = None
    tune_count: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KEYS = (
        'anchor', 'action', 'recovery', 'then', 'whyItFits', 'habitType', 'anchorTime',
        'checkInTime', 'identity', 'tinyVersion', 'environmentPrime', 'frictionReduced',
        'tunedAt', 'tuneCount',
    )

    @property
    def is_reactive(self) -> bool:
        return self.habit_type == HabitType.REACTIVE

    def to_dict(self) -> dict:
        result = dict(self.extra)
        result.update({
            'anchor': self.anchor,
            'action': self.action,
            'recovery': self.recovery,
            'whyItFits': list(self.why_it_fits),
        })
        _put_optional(result, 'then', list(self.then) if self.then is not None else None)
        _put_optional(result, 'habitType', self.habit_type.value if self.habit_type else None)
        _put_optional(result, 'anchorTime', self.anchor_time)
        _put_optional(result, 'checkInTime', self.check_in_time)
        _put_optional(result, 'identity', self.identity)
        _put_optional(result, 'tinyVersion', self.tiny_version)
        _put_optional(result, 'environmentPrime', self.environment_prime)
        _put_optional(result, 'frictionReduced', self.friction_reduced)
        _put_optional(result, 'tunedAt', self.tuned_at)
        _put_optional(result, 'tuneCount', self.tune_count)
        return result

    @staticmethod
    def from_dict(data: dict) -> 'HabitSystem':
        extra = _split_known(data, HabitSystem._KEYS)

        habit_type = None
        raw_type = data.get('habitType')
        if raw_type is not None:
            try:
                habit_type = HabitType(raw_type)
            except ValueError:
                logger.warning(f"[HABIT MODELS] Unknown habitType '{raw_type}', keeping raw value")
                extra['habitType'] = raw_type

        # Stary format: 'then' jako string
        then = data.get('then')
        if isinstance(then, str):
            then = [step.strip() for step in then.split(',') if step.strip()] if ',' in then else [then]

        return HabitSystem(
            anchor=data.get('anchor', ''),
            action=data.get('action', ''),
            recovery=data.get('recovery', ''),
            then=then,
            why_it_fits=list(data.get('whyItFits') or []),
            habit_type=habit_type,
            anchor_time=data.get('anchorTime'),
            check_in_time=data.get('checkInTime'),
            identity=data.get('identity'),
            tiny_version=data.get('tinyVersion'),
            environment_prime=data.get('environmentPrime'),
            friction_reduced=data.get('frictionReduced'),
            tuned_at=data.get('tunedAt'),
            tune_count=data.get('tuneCount'),
            extra=extra,
        )


@dataclass
class PlanDetails:
    """Stary format planu (przed HabitSystem)"""
    anchor: str
    action: str
    recovery: str
    prime: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'anchor': self.anchor,
            'action': self.action,
            'prime': self.prime,
            'recovery': self.recovery,
        }

    @staticmethod
    def from_dict(data: dict) -> 'PlanDetails':
        return PlanDetails(
            anchor=data.get('anchor', ''),
            action=data.get('action', ''),
            recovery=data.get('recovery', ''),
            prime=data.get('prime'),
        )

    def to_system(self, why_it_fits: Optional[List[str]] = None) -> HabitSystem:
        """Migracja PlanDetails -> HabitSystem"""
        return HabitSystem(
            anchor=self.anchor,
            action=self.action,
            recovery=self.recovery,
            then=[self.prime] if self.prime else None,
            why_it_fits=list(why_it_fits or []),
        )


@dataclass
class RepLog:
    """Wpis starego logu powtórzeń (czytany tylko gdy brak checkIns)"""
    id: str
    timestamp: str
    type: RepLogType
    note: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = dict(self.extra)
        result.update({
            'id': self.id,
            'timestamp': self.timestamp,
            'type': self.type.value,
        })
        _put_optional(result, 'note', self.note)
        return result

    @staticmethod
    def from_dict(data: dict) -> 'RepLog':
        return RepLog(
            id=data['id'],
            timestamp=data['timestamp'],
            type=RepLogType(data['type']),
            note=data.get('note'),
            extra=_split_known(data, ('id', 'timestamp', 'type', 'note')),
        )


@dataclass
class HabitData:
    """
    Główny agregat - jeden rekord nawyku na użytkownika.

    `needs_restore_confirmation` jest ustawiane tylko przez ścieżkę
    przywracania z backupu i nigdy nie jest serializowane.
    """
    state: HabitState = HabitState.INSTALL
    created_at: Optional[str] = None       # Ustawiane raz, przy pierwszym przejściu w ACTIVE
    updated_at: Optional[str] = None
    system: Optional[HabitSystem] = None
    plan_details: Optional[PlanDetails] = None
    reps_count: int = 0
    last_done_date: Optional[str] = None   # YYYY-MM-DD
    last_active_date: Optional[str] = None
    missed_date: Optional[str] = None
    check_ins: List[CheckIn] = field(default_factory=list)
    rep_logs: List[RepLog] = field(default_factory=list)

    # Pola pomocnicze
    paused_at: Optional[str] = None
    pause_reason: Optional[str] = None
    reentry_plan: Optional[str] = None
    graduated_at: Optional[str] = None
    last_stage_shown_at: Optional[str] = None
    last_reflection_date: Optional[str] = None
    intake_state: Optional[Dict[str, Any]] = None

    extra: Dict[str, Any] = field(default_factory=dict)
    needs_restore_confirmation: bool = field(default=False, compare=False, repr=False)

    _KEYS = (
        'state', 'createdAt', 'updatedAt', 'system', 'planDetails', 'repsCount',
        'lastDoneDate', 'lastActiveDate', 'missedDate', 'checkIns', 'repLogs', 'pausedAt',
        'pauseReason', 'reentryPlan', 'graduatedAt', 'lastStageShownAt',
        'lastReflectionDate', 'intakeState', '_needsRestoreConfirmation',
    )

    # Pola, które można zmieniać przez HabitStore.update() (snake_case)
    UPDATABLE_FIELDS = (
        'state', 'created_at', 'system', 'plan_details', 'reps_count', 'last_done_date',
        'last_active_date', 'missed_date', 'check_ins', 'rep_logs', 'paused_at',
        'pause_reason', 'reentry_plan', 'graduated_at', 'last_stage_shown_at',
        'last_reflection_date', 'intake_state', 'extra',
    )

    @property
    def habit_type(self) -> HabitType:
        if self.system and self.system.habit_type:
            return self.system.habit_type
        return HabitType.TIME_ANCHORED

    def to_dict(self) -> dict:
        """Konwertuj na słownik JSON (bez flagi przywracania)"""
        result = dict(self.extra)
        result.update({
            'state': self.state.value,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'planDetails': self.plan_details.to_dict() if self.plan_details else None,
            'repsCount': self.reps_count,
            'lastDoneDate': self.last_done_date,
            'lastActiveDate': self.last_active_date,
            'missedDate': self.missed_date,
            'checkIns': [c.to_dict() for c in self.check_ins],
            'repLogs': [r.to_dict() for r in self.rep_logs],
        })
        _put_optional(result, 'system', self.system.to_dict() if self.system else None)
        _put_optional(result, 'pausedAt', self.paused_at)
        _put_optional(result, 'pauseReason', self.pause_reason)
        _put_optional(result, 'reentryPlan', self.reentry_plan)
        _put_optional(result, 'graduatedAt', self.graduated_at)
        _put_optional(result, 'lastStageShownAt', self.last_stage_shown_at)
        _put_optional(result, 'lastReflectionDate', self.last_reflection_date)
        _put_optional(result, 'intakeState', self.intake_state)
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @staticmethod
    def from_dict(data: dict) -> 'HabitData':
        raw_state = data.get('state')
        if raw_state in _LEGACY_STATES:
            state = _LEGACY_STATES[raw_state]
        else:
            state = HabitState(raw_state)

        system = data.get('system')
        plan_details = data.get('planDetails')

        return HabitData(
            state=state,
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            system=HabitSystem.from_dict(system) if system else None,
            plan_details=PlanDetails.from_dict(plan_details) if plan_details else None,
            reps_count=int(data.get('repsCount') or 0),
            last_done_date=data.get('lastDoneDate'),
            last_active_date=data.get('lastActiveDate'),
            missed_date=data.get('missedDate'),
            check_ins=[CheckIn.from_dict(c) for c in data.get('checkIns') or []],
            rep_logs=[RepLog.from_dict(r) for r in data.get('repLogs') or []],
            paused_at=data.get('pausedAt'),
            pause_reason=data.get('pauseReason'),
            reentry_plan=data.get('reentryPlan'),
            graduated_at=data.get('graduatedAt'),
            last_stage_shown_at=data.get('lastStageShownAt'),
            last_reflection_date=data.get('lastReflectionDate'),
            intake_state=data.get('intakeState'),
            extra=_split_known(data, HabitData._KEYS),
        )

    @staticmethod
    def from_json(payload: str) -> 'HabitData':
        """
        Parsuj zapisany JSON.

        Raises:
            HabitValidationError: gdy payload nie jest poprawnym rekordem nawyku
        """
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise HabitValidationError(f"Habit data is not valid JSON: {e}") from e

        return HabitData.from_payload(data)

    @staticmethod
    def from_payload(data: Any) -> 'HabitData':
        """
        Parsuj zdekodowany rekord (lokalny slot, import lub wiersz zdalny).

        Raises:
            HabitValidationError: gdy dane nie są poprawnym rekordem nawyku
        """
        if not isinstance(data, dict) or not data.get('state'):
            raise HabitValidationError("Habit data has no state")

        try:
            return HabitData.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise HabitValidationError(f"Habit data is malformed: {e}") from e


@dataclass
class SystemUpdateResult:
    """Wynik apply_system_update"""
    success: bool
    field: SystemUpdateField
    new_value: str
    previous_value: Optional[str] = None
