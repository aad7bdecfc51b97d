"""
Test Suite: Draft Auto-Save

Tests:
1. A burst of changes produces one write after the quiet period
2. Flush and immediate saves
3. Draft restore on start, unreadable drafts ignored
4. Clearing drafts, local and remote
5. No signed-in user
6. File backed drafts survive a new session
"""

import sys
import os
import time
import asyncio
from datetime import date, datetime

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.form_schema import DraftSnapshot, FormSection
from backend.auth import StaticIdentity
from backend.auto_save import AutoSavePipeline, remote_draft_collection
from backend.document_store import InMemoryDocumentStore
from backend.form_state import KYCFormState
from backend.local_store import FileLocalStore, InMemoryLocalStore, draft_key

TODAY = date(2026, 6, 1)
SAVED_AT = datetime(2026, 6, 1, 9, 30, 0)
DEBOUNCE = 0.05


class RecordingStore(InMemoryLocalStore):
    """In-memory store that records when each write happened."""

    def __init__(self):
        super().__init__()
        self.write_times = []

    def set(self, key: str, value: bytes) -> None:
        try:
            now = asyncio.get_running_loop().time()
        except RuntimeError:
            now = time.monotonic()
        self.write_times.append(now)
        super().set(key, value)


def make_pipeline(store=None, user_id="user-1", document_store=None):
    form = KYCFormState(today=lambda: TODAY)
    store = store if store is not None else RecordingStore()
    pipeline = AutoSavePipeline(
        form,
        store,
        StaticIdentity(user_id),
        document_store=document_store,
        debounce_seconds=DEBOUNCE,
        clock=lambda: SAVED_AT,
    )
    return form, store, pipeline


def test_debounce_single_write():
    """Five quick edits give exactly one write, DEBOUNCE after the last edit."""
    print("\nTEST 1: Debounced Write")
    print("-" * 40)

    async def scenario():
        form, store, pipeline = make_pipeline()
        assert pipeline.start() is False
        loop = asyncio.get_running_loop()

        last_change = None
        for letter in "ABCDE":
            form.update_field("member", "name.first", f"Ada{letter}")
            last_change = loop.time()
            await asyncio.sleep(DEBOUNCE / 5)

        assert store.write_times == []
        assert pipeline.has_pending_save

        await asyncio.sleep(DEBOUNCE * 3)
        pipeline.stop()
        return form, store, pipeline, last_change

    form, store, pipeline, last_change = asyncio.run(scenario())

    assert len(store.write_times) == 1
    delay = store.write_times[0] - last_change
    assert delay >= DEBOUNCE * 0.9, delay
    print(f"   One write, {delay:.3f}s after the last change")

    snapshot = DraftSnapshot.model_validate_json(store.get(draft_key("user-1")))
    assert snapshot.member.name.first == "AdaE"
    assert snapshot.last_updated == SAVED_AT
    assert pipeline.last_auto_saved == SAVED_AT
    assert pipeline.save_count == 1
    assert not pipeline.has_pending_save

    print(" PASSED: Debounced write")


def test_flush_and_immediate_save():
    """flush() writes a pending draft; without an event loop saves are immediate."""
    print("\nTEST 2: Flush and Immediate Save")
    print("-" * 40)

    async def scenario():
        form, store, pipeline = make_pipeline()
        pipeline.start()
        form.update_field("account", "bank_name", "First Bank")
        assert pipeline.has_pending_save
        assert pipeline.flush() is True
        assert not pipeline.has_pending_save
        assert pipeline.flush() is False
        await asyncio.sleep(DEBOUNCE * 2)
        return store

    store = asyncio.run(scenario())
    assert len(store.write_times) == 1
    print("   Flushed once, timer cancelled")

    form, store, pipeline = make_pipeline()
    pipeline.start()
    form.update_field("account", "bank_name", "Second Bank")
    assert len(store.write_times) == 1
    assert not pipeline.has_pending_save
    print("   Saved immediately without a running loop")

    print(" PASSED: Flush and immediate save")


def test_restore_on_start():
    """A stored draft is loaded; unreadable drafts are ignored."""
    print("\nTEST 3: Restore on Start")
    print("-" * 40)

    store = InMemoryLocalStore()
    source = KYCFormState(today=lambda: TODAY)
    source.update_field("member", "email", "ada@example.com")
    source.update_field("account", "routing_number", "021000021")
    store.set(draft_key("user-1"), source.snapshot(last_updated=SAVED_AT).model_dump_json().encode())

    form, _, pipeline = make_pipeline(store=store)
    assert pipeline.start() is True
    assert form.member.email == "ada@example.com"
    assert form.account.routing_number == "021000021"
    assert pipeline.last_auto_saved == SAVED_AT
    print("   Draft restored")

    # Restoring must not schedule a save
    assert not pipeline.has_pending_save
    pipeline.stop()

    store.set(draft_key("user-2"), b"{not json")
    form, _, pipeline = make_pipeline(store=store, user_id="user-2")
    assert pipeline.start() is False
    assert form.member.email == ""
    print("   Corrupt draft ignored")

    print(" PASSED: Restore on start")


def test_clear_draft():
    """Clearing removes the local draft and deletes the remote copy in the background."""
    print("\nTEST 4: Clear Draft")
    print("-" * 40)

    async def scenario(fail_deletes: bool):
        documents = InMemoryDocumentStore()
        documents.fail_deletes = fail_deletes
        documents.put(remote_draft_collection("user-1"), "user-1", {"stale": True})

        form, store, pipeline = make_pipeline(document_store=documents)
        pipeline.start()
        form.update_field("member", "email", "ada@example.com")
        pipeline.flush()
        assert store.contains(draft_key("user-1"))

        form.update_field("member", "email", "other@example.com")
        pipeline.clear_draft()
        await asyncio.sleep(0.01)
        await asyncio.sleep(DEBOUNCE * 2)
        return documents, store, pipeline

    documents, store, pipeline = asyncio.run(scenario(fail_deletes=False))
    assert not store.contains(draft_key("user-1"))
    assert pipeline.last_auto_saved is None
    assert documents.get(remote_draft_collection("user-1"), "user-1") is None
    print("   Local and remote drafts removed, pending save cancelled")

    documents, store, pipeline = asyncio.run(scenario(fail_deletes=True))
    assert not store.contains(draft_key("user-1"))
    assert documents.get(remote_draft_collection("user-1"), "user-1") == {"stale": True}
    print("   Remote delete failure swallowed")

    print(" PASSED: Clear draft")


def test_no_signed_in_user():
    """Nothing is read or written without a user id."""
    print("\nTEST 5: No User")
    print("-" * 40)

    form, store, pipeline = make_pipeline(user_id=None)
    assert pipeline.start() is False
    form.update_field("member", "email", "ada@example.com")
    assert store.write_times == []
    assert pipeline.save_now() is False
    pipeline.clear_draft()

    print(" PASSED: No user")


def test_file_store_round_trip(tmp_path):
    """Drafts written to disk are restored by a new session."""
    print("\nTEST 6: File Store Drafts")
    print("-" * 40)

    store = FileLocalStore(tmp_path / "drafts")
    form, _, pipeline = make_pipeline(store=store)
    pipeline.start()
    form.update_section(FormSection.MEMBER_ADDRESS, {"city": "Springfield", "zip_code": "627010"})
    pipeline.stop()

    files = list((tmp_path / "drafts").glob("*.json"))
    assert [f.name for f in files] == ["kycDraft_user-1.json"]

    restored, _, second = make_pipeline(store=FileLocalStore(tmp_path / "drafts"))
    assert second.start() is True
    assert restored.member_address.city == "Springfield"
    print(f"   Restored from {files[0].name}")

    print(" PASSED: File store drafts")
