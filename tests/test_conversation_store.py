"""
Unit tests for ConversationStore
"""
import json


class TestConversationStore:
    """Test intake conversation persistence"""

    def test_initialize_starts_fresh_conversation(self, conversation_store):
        state = conversation_store.initialize()

        assert state['currentPhase'] == 'discovery'
        assert state['turnCount'] == 0
        assert state['messages'] == []
        assert state['isComplete'] is False
        assert conversation_store.load() == state

    def test_initialize_resumes_unfinished_conversation(self, conversation_store):
        state = conversation_store.initialize()
        conversation_store.add_user_message(state, "I want to exercise")

        resumed = conversation_store.initialize()

        assert resumed['turnCount'] == 1
        assert resumed['messages'][0]['content'] == "I want to exercise"

    def test_completed_conversation_is_not_resumed(self, conversation_store):
        state = conversation_store.initialize()
        conversation_store.complete(state, felt_understood_rating=5)

        fresh = conversation_store.initialize()

        assert fresh['isComplete'] is False
        assert fresh['messages'] == []

    def test_messages(self, conversation_store):
        state = conversation_store.initialize()
        state = conversation_store.add_user_message(state, "Read more")
        state = conversation_store.add_assistant_message(
            state, "What gets in the way?", phase="leverage",
            suggested_responses=["Time", "Energy"],
        )

        assert state['turnCount'] == 1
        assert state['currentPhase'] == "leverage"
        assert state['messages'][0]['id'].startswith("msg_")
        last = conversation_store.get_last_assistant_message(state)
        assert last['content'] == "What gets in the way?"
        assert last['suggestedResponses'] == ["Time", "Energy"]

    def test_complete_sets_rating(self, conversation_store):
        state = conversation_store.complete(conversation_store.initialize(), felt_understood_rating=4)

        assert state['isComplete'] is True
        assert state['completedAt'] is not None
        assert conversation_store.load()['feltUnderstoodRating'] == 4

    def test_corrupt_primary_falls_back_to_backup(self, conversation_store, database):
        state = conversation_store.initialize()
        database.set_value(conversation_store.STORAGE_KEY, "{oops")

        assert conversation_store.load() == state

    def test_clear_removes_slots_and_fires_hook(self, conversation_store, database):
        cleared = []
        conversation_store.set_on_clear_hook(lambda: cleared.append(True))
        conversation_store.initialize()

        conversation_store.clear()

        assert conversation_store.load() is None
        assert database.get_value(conversation_store.BACKUP_KEY) is None
        assert cleared == [True]

    def test_save_hook_gets_copy(self, conversation_store, database):
        received = []
        conversation_store.set_on_save_hook(received.append)

        state = conversation_store.initialize()
        received[0]['turnCount'] = 50

        stored = json.loads(database.get_value(conversation_store.STORAGE_KEY))
        assert stored['turnCount'] == 0
        assert state['turnCount'] == 0
