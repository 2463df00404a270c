"""
Conversation Store - stan rozmowy intake (projektowanie nawyku)

Stan jest nieprzezroczystym słownikiem JSON (messages, currentPhase,
isComplete, ...). Trwałość: ten sam wzorzec primary + backup + hooki co
HabitStore.
"""
import copy
import json
import uuid
from threading import RLock
from typing import Optional, List, Dict, Any, Callable
from loguru import logger

from ...core.local_database import KeyValueDatabase, SlotRepository
from ...utils.date_utils import now_iso

ConversationState = Dict[str, Any]


def create_initial_intake_state() -> ConversationState:
    return {
        'userGoal': None,
        'realLeverage': None,
        'currentPhase': 'discovery',
        'turnCount': 0,
        'messages': [],
        'recommendation': None,
        'isComplete': False,
        'feltUnderstoodRating': None,
        'startedAt': now_iso(),
        'completedAt': None,
    }


def _create_message(role: str, content: str, **fields: Any) -> Dict[str, Any]:
    message = {
        'id': f"msg_{uuid.uuid4().hex[:12]}",
        'role': role,
        'content': content,
        'timestamp': now_iso(),
    }
    message.update({k: v for k, v in fields.items() if v is not None})
    return message


class ConversationStore:
    """Magazyn stanu rozmowy intake"""

    STORAGE_KEY = "habit-stacker-conversation"
    BACKUP_KEY = "habit-stacker-conversation-backup"
    BACKUP_TIMESTAMP_KEY = "habit-stacker-conversation-backup-timestamp"

    def __init__(self, database: KeyValueDatabase):
        self.repository = SlotRepository(
            database, self.STORAGE_KEY, self.BACKUP_KEY, self.BACKUP_TIMESTAMP_KEY
        )
        self._lock = RLock()
        self._on_save_hook: Optional[Callable[[ConversationState], None]] = None
        self._on_clear_hook: Optional[Callable[[], None]] = None

    def set_on_save_hook(self, hook: Optional[Callable[[ConversationState], None]]):
        self._on_save_hook = hook

    def set_on_clear_hook(self, hook: Optional[Callable[[], None]]):
        self._on_clear_hook = hook

    @staticmethod
    def _parse(payload: Optional[str]) -> Optional[ConversationState]:
        if payload is None:
            return None
        try:
            state = json.loads(payload)
        except ValueError as e:
            logger.warning(f"[CONVERSATION STORE] Slot is not valid JSON: {e}")
            return None
        return state if isinstance(state, dict) else None

    def load(self) -> Optional[ConversationState]:
        """Wczytaj stan (primary, awaryjnie backup); None gdy brak rozmowy"""
        state = self._parse(self.repository.read_primary())
        if state is not None:
            return state

        state = self._parse(self.repository.read_backup())
        if state is not None:
            logger.warning("[CONVERSATION STORE] Primary slot missing or corrupt, using backup")
        return state

    def save(self, state: ConversationState) -> bool:
        with self._lock:
            try:
                payload = json.dumps(state, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                logger.error(f"[CONVERSATION STORE] Cannot serialize conversation: {e}")
                return False

            if not self.repository.write(payload):
                logger.error("[CONVERSATION STORE] Failed to persist conversation")
                return False

            hook = self._on_save_hook
            if hook is not None:
                try:
                    hook(copy.deepcopy(state))
                except Exception as e:
                    logger.error(f"[CONVERSATION STORE] Save hook failed: {e}")
            return True

    def clear(self):
        """Usuń rozmowę (oba sloty) i wywołaj clear-hook"""
        with self._lock:
            self.repository.clear_all()
            hook = self._on_clear_hook
            if hook is not None:
                try:
                    hook()
                except Exception as e:
                    logger.error(f"[CONVERSATION STORE] Clear hook failed: {e}")
        logger.info("[CONVERSATION STORE] Conversation cleared")

    def initialize(self) -> ConversationState:
        """Wznów nieukończoną rozmowę albo zacznij nową"""
        existing = self.load()
        if existing is not None and not existing.get('isComplete'):
            logger.info("[CONVERSATION STORE] Resuming existing conversation")
            return existing

        logger.info("[CONVERSATION STORE] Starting new conversation")
        state = create_initial_intake_state()
        self.save(state)
        return state

    def add_user_message(self, state: ConversationState, content: str) -> ConversationState:
        new_state = dict(state)
        new_state['messages'] = list(state.get('messages', [])) + [_create_message('user', content)]
        new_state['turnCount'] = state.get('turnCount', 0) + 1
        self.save(new_state)
        return new_state

    def add_assistant_message(
        self,
        state: ConversationState,
        content: str,
        phase: str,
        suggested_responses: Optional[List[str]] = None,
        recommendation: Optional[Dict[str, Any]] = None
    ) -> ConversationState:
        message = _create_message('assistant', content, phase=phase, suggestedResponses=suggested_responses)
        new_state = dict(state)
        new_state['messages'] = list(state.get('messages', [])) + [message]
        new_state['currentPhase'] = phase
        if recommendation is not None:
            new_state['recommendation'] = recommendation
        self.save(new_state)
        return new_state

    def complete(self, state: ConversationState, felt_understood_rating: Optional[int] = None) -> ConversationState:
        """Oznacz rozmowę jako ukończoną"""
        new_state = dict(state)
        new_state.update({
            'isComplete': True,
            'completedAt': now_iso(),
            'feltUnderstoodRating': felt_understood_rating,
        })
        self.save(new_state)
        return new_state

    @staticmethod
    def get_last_assistant_message(state: ConversationState) -> Optional[Dict[str, Any]]:
        for message in reversed(state.get('messages', [])):
            if message.get('role') == 'assistant':
                return message
        return None
