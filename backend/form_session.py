"""
Form Session - One user's onboarding form with auto-save and submission.

KYCFormSession ties the form state, the draft auto-save pipeline and the
submission pipeline together. SessionRegistry keeps one session per
signed-in user for the API service.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from config.settings import settings
from backend.auth import IdentityProvider, StaticIdentity
from backend.auto_save import AutoSavePipeline
from backend.document_store import DocumentStore, InMemoryDocumentStore
from backend.form_state import KYCFormState
from backend.local_store import LocalStore, create_local_store
from backend.rate_limiter import RateLimiter
from backend.submission import SubmissionPipeline, SubmissionResult

logger = logging.getLogger(__name__)


class KYCFormSession:
    """Form data, draft persistence and submission for one user."""

    def __init__(
        self,
        identity: IdentityProvider,
        local_store: LocalStore,
        document_store: DocumentStore,
        rate_limiter: Optional[RateLimiter] = None,
        debounce_seconds: Optional[float] = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.identity = identity
        self.form = KYCFormState(today=today)
        self.auto_save = AutoSavePipeline(
            self.form,
            local_store,
            identity,
            document_store=document_store,
            debounce_seconds=debounce_seconds,
            clock=clock,
        )
        self.submission = SubmissionPipeline(
            self.form,
            document_store,
            identity,
            rate_limiter=rate_limiter,
            clock=clock,
        )

    def start(self) -> bool:
        """Start auto-save. Returns whether a draft was restored."""
        return self.auto_save.start()

    def close(self) -> None:
        self.auto_save.stop()

    async def submit(self) -> SubmissionResult:
        """
        Submit the form. The pending draft is written first so a failed
        submission never loses data; the draft is cleared on success.
        """
        self.auto_save.flush()
        result = await self.submission.submit()
        if result.success:
            self.auto_save.clear_draft()
        return result

    def clear_draft(self) -> None:
        self.auto_save.clear_draft()

    def start_over(self) -> None:
        """Discard the draft and empty the form."""
        self.auto_save.clear_draft()
        self.form.reset()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session state for display."""
        form = self.form
        last_saved = self.auto_save.last_auto_saved
        return {
            "current_stage": form.current_stage.value,
            "step": form.current_stage.step_number,
            "can_proceed": form.can_proceed(),
            "section_validity": {stage.value: ok for stage, ok in form.section_validity().items()},
            "section_errors": form.section_errors(form.current_stage),
            "age_messages": form.age_messages(),
            "is_signature_valid": form.is_signature_valid,
            "last_auto_saved": last_saved.isoformat() if last_saved else None,
            "has_pending_save": self.auto_save.has_pending_save,
            "submission_status": self.submission.status.value,
            "is_loading": self.submission.is_loading,
            "error_message": self.submission.error_message,
        }


class SessionRegistry:
    """One form session per user id, sharing storage backends."""

    def __init__(
        self,
        local_store: Optional[LocalStore] = None,
        document_store: Optional[DocumentStore] = None,
    ):
        self.local_store = local_store or create_local_store()
        self.document_store = document_store or InMemoryDocumentStore()
        self._sessions: Dict[str, KYCFormSession] = {}

    def get(self, user_id: str) -> Optional[KYCFormSession]:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> KYCFormSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = KYCFormSession(
                identity=StaticIdentity(user_id),
                local_store=self.local_store,
                document_store=self.document_store,
                rate_limiter=RateLimiter(
                    max_attempts=settings.SUBMIT_MAX_ATTEMPTS,
                    window_minutes=settings.SUBMIT_WINDOW_MINUTES,
                ),
            )
            restored = session.start()
            logger.info(f"[Session] Opened form session for {user_id} (draft restored: {restored})")
            self._sessions[user_id] = session
        return session

    def close(self, user_id: str) -> None:
        session = self._sessions.pop(user_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for user_id in list(self._sessions):
            self.close(user_id)
