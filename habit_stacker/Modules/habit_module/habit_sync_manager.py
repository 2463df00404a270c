"""
Habit Sync Manager - synchronizacja rekordu nawyku z tabelą habit_data.

Pull przy starcie sesji, debounced push po każdym zapisie HabitStore,
usunięcie wiersza po resecie.
"""
from typing import Optional, Dict, Any, Callable
from loguru import logger

from ...core.remote_api_client import RemoteAPIClient
from ...core.sync_manager_base import RowSyncManager, SyncResultHook
from .habit_models import HabitData, HabitState
from .habit_store import HabitStore


class HabitSyncManager(RowSyncManager):
    """Menedżer synchronizacji HabitStore <-> habit_data"""

    log_prefix = "[HABIT SYNC]"

    def __init__(
        self,
        store: HabitStore,
        api_client: RemoteAPIClient,
        table: str = "habit_data",
        debounce_seconds: float = 0.5,
        on_sync_result: Optional[SyncResultHook] = None
    ):
        self.store = store
        super().__init__(api_client, table, debounce_seconds, on_sync_result)

    def _register_hooks(self, on_save: Optional[Callable], on_clear: Optional[Callable]):
        self.store.set_on_save_hook(on_save)
        self.store.set_on_clear_hook(on_clear)

    def _load_local(self) -> HabitData:
        return self.store.load()

    def _apply_remote(self, data: Dict[str, Any]) -> HabitData:
        remote = HabitData.from_payload(data)
        if not self.store.save(remote):
            logger.error(f"{self.log_prefix} Remote habit data could not be stored locally")
        return remote

    def _is_pushable(self, snapshot: HabitData) -> bool:
        return snapshot.state != HabitState.INSTALL

    def _serialize(self, snapshot: HabitData) -> Dict[str, Any]:
        # to_dict nigdy nie zawiera flagi _needsRestoreConfirmation
        return snapshot.to_dict()
