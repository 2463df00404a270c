"""
Conversation Module Package
Stan rozmowy intake i jego synchronizacja
"""

from .conversation_store import ConversationStore, ConversationState, create_initial_intake_state
from .conversation_sync_manager import ConversationSyncManager

__all__ = [
    'ConversationStore',
    'ConversationState',
    'create_initial_intake_state',
    'ConversationSyncManager',
]
