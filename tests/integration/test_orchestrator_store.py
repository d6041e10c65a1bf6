"""Integration tests for Orchestrator + Store persistence."""

import pytest
from conftest import RecordingSleep, ScriptedLLM, StatusError
from polychat.dispatcher import Dispatcher
from polychat.errors import AuthError, StorageError
from polychat.models import ASSISTANT_ROLE, USER_ROLE
from polychat.orchestrator import Orchestrator
from polychat.storage import File, InMemory
from polychat.store import Store


def make_stack(storage, script):
    store = Store(storage=storage)
    llm = ScriptedLLM(script)
    return Orchestrator(store, Dispatcher(llm, sleep=RecordingSleep())), store, llm


class TestPersistence:
    async def test_conversation_survives_reload(self, temp_dir):
        orchestrator, store, _ = make_stack(File(str(temp_dir)), ["first reply", "second reply"])
        await orchestrator.send_message("one")
        await orchestrator.send_message("two")
        session_id = orchestrator.current_session.id

        # a fresh stack over the same blob, as after a page reload
        restored, restored_store, llm = make_stack(File(str(temp_dir)), ["third reply"])
        assert restored.current_session.id == session_id

        await restored.send_message("three")
        assert [t["content"] for t in llm.calls[0]["messages"]] == [
            "one",
            "first reply",
            "two",
            "second reply",
            "three",
        ]
        assert restored_store.count_messages(session_id) == 6

    async def test_failed_send_persists_user_message(self, temp_dir):
        orchestrator, _, _ = make_stack(File(str(temp_dir)), [StatusError(401)])
        with pytest.raises(AuthError):
            await orchestrator.send_message("unanswered")

        reloaded = Store(storage=File(str(temp_dir)))
        messages = reloaded.get_messages(orchestrator.current_session.id)
        assert [(m.role, m.content) for m in messages] == [(USER_ROLE, "unanswered")]

    async def test_new_chat_evicts_previous_conversation(self, temp_dir):
        orchestrator, store, _ = make_stack(File(str(temp_dir)), ["reply"])
        await orchestrator.send_message("old")
        old_id = orchestrator.current_session.id

        await orchestrator.create_session()

        reloaded = Store(storage=File(str(temp_dir)))
        assert reloaded.get_session(old_id) is None
        assert reloaded.count_messages() == 0

    async def test_archive_then_send_starts_new_session(self):
        orchestrator, store, _ = make_stack(InMemory(), ["reply"])
        await orchestrator.send_message("first")
        first_id = orchestrator.current_session.id
        await orchestrator.archive_session()

        await orchestrator.send_message("second")
        assert orchestrator.current_session.id != first_id
        assert [m.role for m in store.get_messages(orchestrator.current_session.id)] == [
            USER_ROLE,
            ASSISTANT_ROLE,
        ]


class TestStorageFailure:
    async def test_assistant_commit_failure_surfaces_storage_error(self):
        class FailAfter(InMemory):
            """Accepts ``writes`` writes, then fails every one after."""

            def __init__(self, writes):
                super().__init__()
                self.writes = writes

            def set(self, key, value):
                if self.writes <= 0:
                    raise OSError("quota exceeded")
                self.writes -= 1
                super().set(key, value)

        # session creation and the user message succeed, the reply does not
        storage = FailAfter(writes=2)
        orchestrator, store, _ = make_stack(storage, ["reply"])

        with pytest.raises(StorageError):
            await orchestrator.send_message("hello")

        messages = store.get_messages(orchestrator.current_session.id)
        assert [m.role for m in messages] == [USER_ROLE]
