"""
Conversation Sync Manager - synchronizacja stanu rozmowy z tabelą conversation_state.
"""
from typing import Optional, Dict, Any, Callable

from ...core.remote_api_client import RemoteAPIClient
from ...core.sync_manager_base import RowSyncManager, SyncResultHook
from .conversation_store import ConversationStore, ConversationState


class ConversationSyncManager(RowSyncManager):
    """Menedżer synchronizacji ConversationStore <-> conversation_state"""

    log_prefix = "[CONVERSATION SYNC]"

    def __init__(
        self,
        store: ConversationStore,
        api_client: RemoteAPIClient,
        table: str = "conversation_state",
        debounce_seconds: float = 0.5,
        on_sync_result: Optional[SyncResultHook] = None
    ):
        self.store = store
        super().__init__(api_client, table, debounce_seconds, on_sync_result)

    def _register_hooks(self, on_save: Optional[Callable], on_clear: Optional[Callable]):
        self.store.set_on_save_hook(on_save)
        self.store.set_on_clear_hook(on_clear)

    def _load_local(self) -> Optional[ConversationState]:
        return self.store.load()

    def _apply_remote(self, data: Dict[str, Any]) -> ConversationState:
        if not isinstance(data, dict):
            raise ValueError("conversation state must be an object")
        self.store.save(data)
        return data

    def _is_pushable(self, snapshot: Optional[ConversationState]) -> bool:
        return snapshot is not None

    def _serialize(self, snapshot: ConversationState) -> Dict[str, Any]:
        return snapshot
