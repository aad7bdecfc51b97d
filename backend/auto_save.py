"""
Draft Auto-Save - Debounced local persistence of the form.

Observes form changes, waits for a quiet period (2 seconds by default)
after the last change and then writes one DraftSnapshot to local storage
under the signed-in user's key. On start the stored draft is restored.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set

from pydantic import ValidationError

from config.settings import settings
from config.form_schema import DraftSnapshot
from backend.auth import IdentityProvider
from backend.document_store import DocumentStore
from backend.form_state import FormChange, KYCFormState
from backend.local_store import LocalStore, LocalStoreError, draft_key

logger = logging.getLogger(__name__)


def remote_draft_collection(user_id: str) -> str:
    return f"users/{user_id}/drafts"


class AutoSavePipeline:
    """
    Debounced draft writer for one form session.

    Every change restarts the timer, so a burst of edits produces a single
    write debounce_seconds after the last one. Timers run on the current
    asyncio loop; without a running loop the draft is written immediately.
    """

    def __init__(
        self,
        form: KYCFormState,
        local_store: LocalStore,
        identity: IdentityProvider,
        document_store: Optional[DocumentStore] = None,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.form = form
        self.local_store = local_store
        self.identity = identity
        self.document_store = document_store
        self.debounce_seconds = (
            settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self._clock = clock
        self.last_auto_saved: Optional[datetime] = None
        self.save_count = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin observing the form and restore any stored draft."""
        if self._unsubscribe is None:
            self._unsubscribe = self.form.subscribe(self._on_change)
        return self.load_draft()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_pending()

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    def _on_change(self, change: FormChange) -> None:
        self.schedule_save()

    @property
    def has_pending_save(self) -> bool:
        return self._handle is not None

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def schedule_save(self) -> None:
        """(Re)start the debounce timer."""
        self._cancel_pending()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[AutoSave] No running event loop, saving immediately")
            self.save_now()
            return
        self._handle = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self.save_now()

    def flush(self) -> bool:
        """Write a pending draft now instead of waiting for the timer."""
        if self._handle is None:
            return False
        self._cancel_pending()
        return self.save_now()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_now(self) -> bool:
        """Write the current form as the user's draft. Returns whether it was written."""
        user_id = self.identity.current_user_id()
        if not user_id:
            logger.debug("[AutoSave] No signed-in user, draft not saved")
            return False

        now = self._clock()
        snapshot = self.form.snapshot(last_updated=now)

        try:
            self.local_store.set(draft_key(user_id), snapshot.model_dump_json().encode("utf-8"))
        except LocalStoreError as e:
            logger.warning(f"[AutoSave] Failed to save draft locally: {e}")
            return False

        self.last_auto_saved = now
        self.save_count += 1
        logger.debug(f"[AutoSave] Draft saved for user {user_id}")
        return True

    def load_draft(self) -> bool:
        """Restore the stored draft onto the form. Unreadable drafts are ignored."""
        user_id = self.identity.current_user_id()
        if not user_id:
            return False

        try:
            data = self.local_store.get(draft_key(user_id))
        except LocalStoreError as e:
            logger.warning(f"[AutoSave] Failed to read local draft: {e}")
            return False

        if data is None:
            return False

        try:
            snapshot = DraftSnapshot.model_validate_json(data)
        except (ValidationError, UnicodeDecodeError) as e:
            logger.warning(f"[AutoSave] Failed to load local draft: {e}")
            return False

        self.form.restore(snapshot)
        self.last_auto_saved = snapshot.last_updated
        logger.info(f"[AutoSave] Restored draft for user {user_id}")
        return True

    def clear_draft(self) -> None:
        """
        Remove the local draft and reset last_auto_saved.

        The remote draft copy is deleted in the background; a failure
        there is logged and never reaches the caller.
        """
        self._cancel_pending()
        self.last_auto_saved = None

        user_id = self.identity.current_user_id()
        if not user_id:
            return

        try:
            self.local_store.remove(draft_key(user_id))
        except LocalStoreError as e:
            logger.warning(f"[AutoSave] Failed to remove local draft: {e}")

        self._delete_remote_draft(user_id)

    def _delete_remote_draft(self, user_id: str) -> None:
        if self.document_store is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[AutoSave] No running event loop, remote draft not deleted")
            return
        task = loop.create_task(self._delete_remote(user_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _delete_remote(self, user_id: str) -> None:
        try:
            await self.document_store.delete(remote_draft_collection(user_id), user_id)
        except Exception as e:
            logger.warning(f"[AutoSave] Failed to delete remote draft: {e}")
