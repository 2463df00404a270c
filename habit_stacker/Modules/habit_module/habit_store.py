"""
Habit Store - jedyny zapisujący rekord HabitData

Każda mutacja: odczyt aktualnego snapshotu -> czysta transformacja ->
zapis do slotów lokalnych -> wywołanie save-hook (synchronizacja).

Obsługuje:
- load/save z kopią zapasową i przywracaniem po uszkodzeniu slotu primary
- logowanie check-inów (również wstecznych) z przeliczeniem powtórzeń
- przejścia cyklu życia (activate/graduate/pause/resume/skip recovery)
- tune-up systemu
- eksport/import, reset
"""
import copy
from dataclasses import replace
from threading import RLock
from typing import Optional, List, Dict, Any, Callable
from loguru import logger

from ...core.exceptions import HabitValidationError
from ...core.local_database import KeyValueDatabase, SlotRepository
from ...utils.date_utils import get_local_date_string, add_days, now_iso
from .habit_models import (
    HabitData, HabitState, HabitSystem, CheckIn, CheckInState, PlanDetails,
    SystemUpdateField, SystemUpdateResult,
)
from .checkin_logic import (
    REP_STATES, CheckInStats, derive_state, dedupe_by_date, is_rep, recalculate_stats,
    summarize_check_ins, validate_check_in, generate_check_in_id, effective_check_ins,
)

SaveHook = Callable[[HabitData], None]
ClearHook = Callable[[], None]

# Opcjonalne pola check-inu scalane przy edycji istniejącego dnia
_OPTIONAL_CHECK_IN_FIELDS = (
    'recovery_offered', 'recovery_completed', 'recovery_accepted', 'difficulty_rating',
    'miss_reason', 'note', 'outcome_success',
)


class HabitStore:
    """
    Magazyn rekordu nawyku (local-first).

    Instancja trzyma własne hooki - tworzona raz na sesję, niszczona przy
    wylogowaniu.
    """

    STORAGE_KEY = "habit-stacker-data"
    BACKUP_KEY = "habit-stacker-data-backup"
    BACKUP_TIMESTAMP_KEY = "habit-stacker-backup-timestamp"

    def __init__(self, database: KeyValueDatabase):
        """
        Args:
            database: Lokalna baza klucz/wartość
        """
        self.repository = SlotRepository(
            database, self.STORAGE_KEY, self.BACKUP_KEY, self.BACKUP_TIMESTAMP_KEY
        )
        self._lock = RLock()
        self._on_save_hook: Optional[SaveHook] = None
        self._on_clear_hook: Optional[ClearHook] = None

    # =========================================================================
    # HOOKI
    # =========================================================================

    def set_on_save_hook(self, hook: Optional[SaveHook]):
        """Zarejestruj (albo wyrejestruj przez None) callback po każdym zapisie"""
        self._on_save_hook = hook

    def set_on_clear_hook(self, hook: Optional[ClearHook]):
        """Zarejestruj (albo wyrejestruj przez None) callback po resecie"""
        self._on_clear_hook = hook

    def _fire_save_hook(self, data: HabitData):
        hook = self._on_save_hook
        if hook is None:
            return
        try:
            hook(copy.deepcopy(data))
        except Exception as e:
            # Błąd synchronizacji nie może zepsuć zapisu
            logger.error(f"[HABIT STORE] Save hook failed: {e}")

    def _fire_clear_hook(self):
        hook = self._on_clear_hook
        if hook is None:
            return
        try:
            hook()
        except Exception as e:
            logger.error(f"[HABIT STORE] Clear hook failed: {e}")

    # =========================================================================
    # LOAD / SAVE
    # =========================================================================

    def load(self) -> HabitData:
        """
        Wczytaj rekord nawyku.

        Uszkodzony lub brakujący slot primary -> backup z flagą
        needs_restore_confirmation; brak obu -> świeży rekord 'install'.
        Nigdy nie rzuca wyjątku.
        """
        primary = self.repository.read_primary()
        if primary is not None:
            try:
                return HabitData.from_json(primary)
            except HabitValidationError as e:
                logger.warning(f"[HABIT STORE] Primary slot unreadable: {e}")

        backup = self.repository.read_backup()
        if backup is not None:
            try:
                data = HabitData.from_json(backup)
                data.needs_restore_confirmation = True
                logger.warning("[HABIT STORE] Using backup slot, restore confirmation needed")
                return data
            except HabitValidationError as e:
                logger.error(f"[HABIT STORE] Backup slot unreadable: {e}")

        return HabitData()

    def save(self, data: HabitData) -> bool:
        """
        Zapisz rekord (primary + backup + znacznik czasu), potem save-hook.

        Returns:
            True jeśli zapis lokalny się udał
        """
        with self._lock:
            try:
                payload = data.to_json()
            except (TypeError, ValueError) as e:
                logger.error(f"[HABIT STORE] Cannot serialize habit data: {e}")
                return False

            if not self.repository.write(payload):
                logger.error("[HABIT STORE] Failed to persist habit data")
                return False

            logger.debug(f"[HABIT STORE] Saved (state={data.state.value}, reps={data.reps_count})")
            self._fire_save_hook(data)
            return True

    def _commit(self, updated: HabitData) -> HabitData:
        updated.updated_at = now_iso()
        updated.needs_restore_confirmation = False
        self.save(updated)
        return updated

    def update(self, patch: Dict[str, Any]) -> HabitData:
        """
        Płytkie scalenie patcha (klucze snake_case) z aktualnym rekordem.

        Raises:
            HabitValidationError: nieznane pole w patchu
        """
        unknown = [key for key in patch if key not in HabitData.UPDATABLE_FIELDS]
        if unknown:
            raise HabitValidationError(f"Unknown habit data fields: {unknown}")

        patch = dict(patch)
        if isinstance(patch.get('state'), str):
            patch['state'] = HabitState(patch['state'])

        with self._lock:
            current = self.load()
            return self._commit(replace(current, **patch))

    # =========================================================================
    # CHECK-INY
    # =========================================================================

    def log_check_in(
        self,
        trigger_occurred: bool,
        action_taken: bool,
        date: Optional[str] = None,
        **fields: Any
    ) -> HabitData:
        """
        Zapisz check-in dla daty (domyślnie dziś).

        Istniejący dzień jest edytowany (ten sam id, odświeżony checkedInAt).
        Powtórzenie jest naliczane tylko gdy dzień PRZECHODZI w stan
        completed/recovered. Stan nawyku zmienia się tylko dla najnowszej
        daty w historii - wpis wsteczny przelicza jedynie statystyki.
        Wyjątek: odrobienie dnia zapisanego w missed_date zawsze przywraca
        stan active.

        Args:
            trigger_occurred: Czy trigger wystąpił
            action_taken: Czy akcja została wykonana
            date: Data YYYY-MM-DD (czas lokalny)
            **fields: recovery_offered, recovery_completed, recovery_accepted,
                difficulty_rating, miss_reason, note, outcome_success

        Raises:
            CheckInValidationError: przed jakimkolwiek zapisem
        """
        unknown = [key for key in fields if key not in _OPTIONAL_CHECK_IN_FIELDS]
        if unknown:
            raise HabitValidationError(f"Unknown check-in fields: {unknown}")

        day = date or get_local_date_string()
        optional = {key: value for key, value in fields.items() if value is not None}

        with self._lock:
            current = self.load()
            deduped = dedupe_by_date(current.check_ins)
            existing = deduped.get(day)
            was_rep = is_rep(existing)
            now = now_iso()

            if existing is not None:
                entry = replace(
                    existing,
                    trigger_occurred=trigger_occurred,
                    action_taken=action_taken,
                    checked_in_at=now,
                    **optional
                )
                validate_check_in(entry)
                check_ins = [entry if c.id == existing.id else c for c in current.check_ins]
            else:
                entry = CheckIn(
                    id=generate_check_in_id(),
                    date=day,
                    checked_in_at=now,
                    trigger_occurred=trigger_occurred,
                    action_taken=action_taken,
                    **optional
                )
                validate_check_in(entry)
                check_ins = current.check_ins + [entry]

            new_state = derive_state(entry)
            updated = replace(current, check_ins=check_ins, last_active_date=now)

            if new_state in REP_STATES and not was_rep:
                updated.reps_count = current.reps_count + 1

            _, rep_last_done = recalculate_stats(check_ins)
            if rep_last_done is not None:
                updated.last_done_date = rep_last_done
            elif was_rep:
                updated.last_done_date = None

            is_backfill = any(other > day for other in deduped if other != day)
            resolves_miss = (
                current.state == HabitState.MISSED
                and day == current.missed_date
                and new_state in REP_STATES
            )
            if resolves_miss:
                updated.state = HabitState.ACTIVE
                updated.missed_date = None
                logger.info(f"[HABIT STORE] Missed day {day} resolved as {new_state.value}")
            elif is_backfill:
                logger.info(f"[HABIT STORE] Backfilled {day} as {new_state.value}")
            else:
                self._apply_check_in_transition(updated, new_state, day, now)
                logger.info(f"[HABIT STORE] Logged {day} as {new_state.value} (state={updated.state.value})")

            return self._commit(updated)

    @staticmethod
    def _apply_check_in_transition(data: HabitData, check_in_state: CheckInState, day: str, now: str):
        """Przejście stanu nawyku po check-inie najnowszej daty (in-place)"""
        if check_in_state in REP_STATES:
            if data.state in (HabitState.DESIGNED, HabitState.ACTIVE, HabitState.MISSED):
                data.state = HabitState.ACTIVE
                data.missed_date = None
                if data.created_at is None:
                    data.created_at = now
        elif check_in_state == CheckInState.MISSED:
            if data.state in (HabitState.ACTIVE, HabitState.MISSED):
                data.state = HabitState.MISSED
                data.missed_date = day
        # no_trigger: dane zapisane, stan bez zmian

    def complete_recovery(self, date: Optional[str] = None) -> HabitData:
        """
        Oznacz pominięty dzień jako odzyskany (nalicza powtórzenie).
        Domyślnie dotyczy missed_date, a w jego braku dzisiejszego dnia.
        """
        with self._lock:
            current = self.load()
            day = date or current.missed_date or get_local_date_string()
            existing = dedupe_by_date(current.check_ins).get(day)
            if existing is None or derive_state(existing) != CheckInState.MISSED:
                logger.debug(f"[HABIT STORE] No missed check-in on {day}, recovery ignored")
                return current

            return self.log_check_in(
                trigger_occurred=True,
                action_taken=False,
                date=day,
                recovery_offered=True,
                recovery_completed=True,
            )

    def skip_recovery(self) -> HabitData:
        """Pomiń recovery: dzień zostaje pominięty, bez powtórzenia, stan -> active"""
        with self._lock:
            current = self.load()
            if current.state != HabitState.MISSED:
                logger.debug(f"[HABIT STORE] skip_recovery ignored in state {current.state.value}")
                return current

            check_ins = current.check_ins
            missed = dedupe_by_date(check_ins).get(current.missed_date) if current.missed_date else None
            if missed is not None and derive_state(missed) == CheckInState.MISSED:
                marked = replace(missed, recovery_completed=False)
                check_ins = [marked if c.id == missed.id else c for c in check_ins]

            updated = replace(
                current, check_ins=check_ins, state=HabitState.ACTIVE, missed_date=None
            )
            logger.info("[HABIT STORE] Recovery skipped")
            return self._commit(updated)

    def get_today_check_in(self, today: Optional[str] = None) -> Optional[CheckIn]:
        today = today or get_local_date_string()
        return dedupe_by_date(effective_check_ins(self.load())).get(today)

    def get_recent_check_ins(self, days: int = 7, today: Optional[str] = None) -> List[CheckIn]:
        """Zdeduplikowane check-iny z ostatnich `days` dni (rosnąco po dacie)"""
        today = today or get_local_date_string()
        cutoff = add_days(today, -days)
        deduped = dedupe_by_date(effective_check_ins(self.load()))
        return [deduped[day] for day in sorted(deduped) if day >= cutoff]

    def get_check_in_stats(self, days: int = 7, today: Optional[str] = None) -> CheckInStats:
        return summarize_check_ins(self.get_recent_check_ins(days, today))

    # =========================================================================
    # CYKL ŻYCIA
    # =========================================================================

    def design_habit(self, system: HabitSystem, plan_details: Optional[PlanDetails] = None) -> HabitData:
        """Zapisz zaprojektowany system: install -> designed"""
        with self._lock:
            current = self.load()
            if current.state not in (HabitState.INSTALL, HabitState.DESIGNED):
                logger.warning(f"[HABIT STORE] design_habit ignored in state {current.state.value}")
                return current

            updated = replace(
                current,
                state=HabitState.DESIGNED,
                system=system,
                plan_details=plan_details if plan_details is not None else current.plan_details,
            )
            logger.info(f"[HABIT STORE] Habit designed: {system.anchor} -> {system.action}")
            return self._commit(updated)

    def activate_habit(self) -> HabitData:
        """designed -> active"""
        with self._lock:
            current = self.load()
            if current.state != HabitState.DESIGNED:
                logger.debug(f"[HABIT STORE] activate_habit ignored in state {current.state.value}")
                return current

            updated = replace(
                current,
                state=HabitState.ACTIVE,
                created_at=current.created_at or now_iso(),
            )
            return self._commit(updated)

    def graduate_habit(self) -> HabitData:
        """active -> maintained (w innym stanie: no-op)"""
        with self._lock:
            current = self.load()
            if current.state != HabitState.ACTIVE:
                logger.debug(f"[HABIT STORE] graduate_habit ignored in state {current.state.value}")
                return current

            updated = replace(current, state=HabitState.MAINTAINED, graduated_at=now_iso())
            logger.success("[HABIT STORE] Habit graduated")
            return self._commit(updated)

    def pause_habit(self, reason: str, reentry_plan: Optional[str] = None) -> HabitData:
        """active/missed -> paused"""
        with self._lock:
            current = self.load()
            if current.state not in (HabitState.ACTIVE, HabitState.MISSED):
                logger.debug(f"[HABIT STORE] pause_habit ignored in state {current.state.value}")
                return current

            updated = replace(
                current,
                state=HabitState.PAUSED,
                paused_at=now_iso(),
                pause_reason=reason,
                reentry_plan=reentry_plan,
                missed_date=None,
            )
            logger.info(f"[HABIT STORE] Habit paused: {reason}")
            return self._commit(updated)

    def resume_habit(self) -> HabitData:
        """paused -> active"""
        with self._lock:
            current = self.load()
            if current.state != HabitState.PAUSED:
                logger.debug(f"[HABIT STORE] resume_habit ignored in state {current.state.value}")
                return current

            updated = replace(
                current,
                state=HabitState.ACTIVE,
                paused_at=None,
                pause_reason=None,
                last_active_date=now_iso(),
            )
            logger.info("[HABIT STORE] Habit resumed")
            return self._commit(updated)

    # =========================================================================
    # TUNE-UP
    # =========================================================================

    def update_system_toolkit(
        self,
        tiny_version: Optional[str] = None,
        environment_prime: Optional[str] = None,
        friction_reduced: Optional[str] = None
    ) -> HabitData:
        """
        Zapisz toolkit z rozmowy tune-up (podbija tunedAt i tuneCount).

        Raises:
            HabitValidationError: brak zaprojektowanego systemu
        """
        with self._lock:
            current = self.load()
            if current.system is None:
                raise HabitValidationError("Cannot tune a habit without a system")

            toolkit = {
                'tiny_version': tiny_version,
                'environment_prime': environment_prime,
                'friction_reduced': friction_reduced,
            }
            system = replace(current.system, **{k: v for k, v in toolkit.items() if v is not None})
            self._bump_tune_metadata(system)
            return self._commit(replace(current, system=system))

    def apply_system_update(self, field: SystemUpdateField, new_value: str) -> SystemUpdateResult:
        """
        Zmień jedno pole systemu (anchor/action/tiny_version/recovery/timing).

        Timing zmienia checkInTime dla nawyków reactive, w pozostałych anchorTime.
        """
        field = SystemUpdateField(field)
        if field == SystemUpdateField.NONE:
            return SystemUpdateResult(success=True, field=field, new_value=new_value)

        with self._lock:
            current = self.load()
            if current.system is None:
                logger.warning("[HABIT STORE] System update requested but no system designed")
                return SystemUpdateResult(success=False, field=field, new_value=new_value)

            system = copy.deepcopy(current.system)
            if field == SystemUpdateField.TIMING:
                attr = 'check_in_time' if system.is_reactive else 'anchor_time'
            else:
                attr = field.value

            previous = getattr(system, attr)
            setattr(system, attr, new_value)
            self._bump_tune_metadata(system)
            self._commit(replace(current, system=system))

            logger.info(f"[HABIT STORE] System field '{attr}' updated")
            return SystemUpdateResult(
                success=True, field=field, new_value=new_value, previous_value=previous
            )

    @staticmethod
    def _bump_tune_metadata(system: HabitSystem):
        system.tuned_at = now_iso()
        system.tune_count = (system.tune_count or 0) + 1

    # =========================================================================
    # BACKUP / EKSPORT / RESET
    # =========================================================================

    def export_habit_data(self) -> str:
        """Dokładny JSON slotu primary (albo serializacja wczytanego rekordu)"""
        primary = self.repository.read_primary()
        if primary is not None:
            try:
                HabitData.from_json(primary)
                return primary
            except HabitValidationError:
                logger.warning("[HABIT STORE] Primary slot corrupt, exporting loaded record")
        return self.load().to_json()

    def import_habit_data(self, payload: str) -> HabitData:
        """
        Zaimportuj wyeksportowany JSON jako nowy rekord.

        Raises:
            HabitValidationError: payload nie jest poprawnym rekordem
        """
        data = HabitData.from_json(payload)
        for check_in in data.check_ins:
            validate_check_in(check_in)

        with self._lock:
            if not self.save(data):
                logger.error("[HABIT STORE] Import could not be persisted")
            logger.info(f"[HABIT STORE] Imported habit data (state={data.state.value}, reps={data.reps_count})")
            return data

    def restore_from_backup(self) -> Optional[HabitData]:
        """Skopiuj backup do slotu primary; None gdy backup brak lub jest uszkodzony"""
        with self._lock:
            backup = self.repository.read_backup()
            if backup is None:
                return None
            try:
                data = HabitData.from_json(backup)
            except HabitValidationError as e:
                logger.error(f"[HABIT STORE] Backup cannot be restored: {e}")
                return None

            if self.repository.restore() is None:
                return None
            self._fire_save_hook(data)
            return data

    def clear_backup(self):
        """Usuń backup (użytkownik wybrał "zacznij od nowa")"""
        self.repository.clear_backup()

    def get_backup_timestamp(self) -> Optional[str]:
        return self.repository.read_backup_timestamp()

    def reset_habit_data(self) -> HabitData:
        """Usuń oba sloty, wywołaj clear-hook, zwróć świeży rekord 'install'"""
        with self._lock:
            if not self.repository.clear_all():
                logger.error("[HABIT STORE] Failed to clear local habit slots")
            self._fire_clear_hook()
            logger.info("[HABIT STORE] Habit data reset")
            return HabitData()

