# =============================================================================
# Unit Tests — Tenant Store
# =============================================================================
#
# Tests tenant validation, metadata stamping and search scoping against the
# in-memory FakeVectorStore.
# =============================================================================

import pytest

from ragqueue.jobs.errors import ValidationError
from ragqueue.models.requests import Tenant
from ragqueue.services.chunker import Chunk
from ragqueue.services.tenant_store import new_chat_id, require_tenant
from tests.conftest import ALICE_CHAT_1, ALICE_CHAT_2, BOB_CHAT_1


class TestNewChatId:
    def test_format_is_user_and_epoch_ms(self):
        assert new_chat_id("user_123", now_ms=1718000000000) == "user_123_1718000000000"

    def test_uses_current_time_by_default(self):
        chat_id = new_chat_id("user_123")
        prefix, _, millis = chat_id.rpartition("_")
        assert prefix == "user_123"
        assert millis.isdigit() and len(millis) >= 13

    @pytest.mark.parametrize("user_id", ["", "   "])
    def test_blank_user_id_rejected(self, user_id):
        with pytest.raises(ValidationError):
            new_chat_id(user_id)


class TestRequireTenant:
    @pytest.mark.parametrize(
        "tenant",
        [
            None,
            Tenant(),
            Tenant(user_id="alice"),
            Tenant(chat_id="c1"),
            Tenant(user_id="  ", chat_id="c1"),
        ],
    )
    def test_incomplete_tenant_rejected(self, tenant):
        with pytest.raises(ValidationError, match="Both user_id and chat_id are required"):
            require_tenant(tenant)

    def test_complete_tenant_passes(self):
        assert require_tenant(ALICE_CHAT_1) is ALICE_CHAT_1


class TestAddDocuments:
    def test_stamps_tenant_on_every_chunk(self, tenant_store, vector_store):
        count = tenant_store.add_documents(
            ALICE_CHAT_1, [Chunk(content="one"), Chunk(content="two", metadata={"source": "a.txt"})]
        )

        assert count == 2
        stored = vector_store.metadata_for(ALICE_CHAT_1)
        assert len(stored) == 2
        assert stored[1]["source"] == "a.txt"

    def test_caller_supplied_tenant_metadata_is_overwritten(self, tenant_store, vector_store):
        tenant_store.add_documents(
            ALICE_CHAT_1,
            [Chunk(content="sneaky", metadata={"user_id": "bob", "chat_id": "bob_chat"})],
        )

        assert vector_store.metadata_for(BOB_CHAT_1) == []
        assert len(vector_store.metadata_for(ALICE_CHAT_1)) == 1

    def test_does_not_mutate_input_chunks(self, tenant_store):
        chunk = Chunk(content="one", metadata={"source": "x"})
        tenant_store.add_documents(ALICE_CHAT_1, [chunk])
        assert chunk.metadata == {"source": "x"}

    def test_invalid_tenant_touches_nothing(self, tenant_store, vector_store):
        with pytest.raises(ValidationError):
            tenant_store.add_documents(Tenant(user_id="alice"), [Chunk(content="one")])
        assert vector_store.rows == []

    def test_empty_chunk_list_stores_nothing(self, tenant_store, vector_store):
        assert tenant_store.add_documents(ALICE_CHAT_1, []) == 0
        assert vector_store.rows == []


class TestSearch:
    def test_passes_tenant_filter_to_store(self, tenant_store, vector_store):
        tenant_store.search(ALICE_CHAT_1, "anything", top_k=3)
        assert vector_store.filters == [{"user_id": "alice", "chat_id": ALICE_CHAT_1.chat_id}]

    def test_only_own_chunks_returned(self, tenant_store):
        tenant_store.add_documents(ALICE_CHAT_1, [Chunk(content="node js runtime")])
        tenant_store.add_documents(ALICE_CHAT_2, [Chunk(content="node js in chat two")])
        tenant_store.add_documents(BOB_CHAT_1, [Chunk(content="node js for bob")])

        hits = tenant_store.search(ALICE_CHAT_1, "node js", top_k=10)

        assert [h.content for h in hits] == ["node js runtime"]

    def test_hits_outside_tenant_are_dropped(self, tenant_store, vector_store):
        tenant_store.add_documents(ALICE_CHAT_1, [Chunk(content="node js runtime")])
        tenant_store.add_documents(BOB_CHAT_1, [Chunk(content="node js for bob")])
        vector_store.ignore_filter = True

        hits = tenant_store.search(BOB_CHAT_1, "node js", top_k=10)

        assert [h.content for h in hits] == ["node js for bob"]

    def test_invalid_tenant_does_not_query(self, tenant_store, vector_store):
        with pytest.raises(ValidationError):
            tenant_store.search(Tenant(chat_id="c1"), "node js")
        assert vector_store.filters == []
