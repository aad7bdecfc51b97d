"""
Form Submission - Sanitize, protect and atomically store a completed form.

Orchestrates:
1. Rate limit check (no I/O when denied)
2. Sanitizing every text field
3. Requiring a signed-in user
4. Building member, nominee, account and audit documents
5. One all-or-nothing batch commit

The raw account number never leaves this module: the stored account
document carries a SHA-256 hash and a masked display form instead.
"""

import logging
import platform
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from config.settings import settings
from config.form_schema import Address, BankAccount, Person
from backend.auth import IdentityProvider
from backend.document_store import BatchWrite, DocumentStore
from backend.form_state import KYCFormState
from backend.rate_limiter import RateLimiter, check_submission_allowed, get_submission_limiter
from backend.sanitizer import sanitize
from backend.security import hash_sensitive_data, mask_account_number

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "User authentication required"
SUBMISSION_FAILED_MESSAGE = "Failed to submit form. Please try again."
SUBMISSION_IN_PROGRESS_MESSAGE = "A submission is already in progress"
AUDIT_ACTION = "kyc_form_submission"


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubmissionErrorCode(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_REQUIRED = "auth_required"
    STORE_FAILURE = "store_failure"
    IN_PROGRESS = "in_progress"


class SubmissionResult(BaseModel):
    """Outcome of one submit() call."""
    status: SubmissionStatus
    error_code: Optional[SubmissionErrorCode] = None
    error_message: Optional[str] = None
    audit_id: Optional[str] = None
    document_ids: Dict[str, str] = Field(default_factory=dict)
    submitted_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == SubmissionStatus.SUCCEEDED


# ============================================================================
# SANITIZATION
# ============================================================================

def sanitize_address(address: Address) -> Address:
    return address.model_copy(update={
        "address_line1": sanitize(address.address_line1),
        "address_line2": sanitize(address.address_line2),
        "city": sanitize(address.city),
        "state": sanitize(address.state),
        "zip_code": sanitize(address.zip_code),
    })


def sanitize_person(person: Person, address: Optional[Address] = None) -> Person:
    """Sanitized copy of a person, optionally with a replacement address."""
    name = person.name.model_copy(update={
        "first": sanitize(person.name.first),
        "middle": sanitize(person.name.middle),
        "last": sanitize(person.name.last),
    })
    return person.model_copy(update={
        "name": name,
        "email": sanitize(person.email),
        "phone": sanitize(person.phone),
        "address": sanitize_address(address if address is not None else person.address),
    })


def sanitize_account(account: BankAccount) -> BankAccount:
    return account.model_copy(update={
        "account_holder_name": sanitize(account.account_holder_name),
        "account_number": sanitize(account.account_number),
        "confirm_account_number": sanitize(account.confirm_account_number),
        "routing_number": sanitize(account.routing_number),
        "bank_name": sanitize(account.bank_name),
    })


# ============================================================================
# DOCUMENTS
# ============================================================================

def get_device_info() -> Dict[str, str]:
    """Platform details recorded in the audit log."""
    return {
        "platform": platform.system() or "unknown",
        "version": platform.release() or "unknown",
        "app_version": settings.APP_VERSION,
    }


def build_account_document(account: BankAccount) -> Dict[str, Any]:
    """Account fields as stored: hashed and masked number, no confirmation field."""
    data = account.model_dump(mode="json", exclude={"confirm_account_number"})
    data["account_number_hash"] = hash_sensitive_data(account.account_number)
    data["account_number"] = mask_account_number(account.account_number)
    return data


def build_submission_batch(
    member: Person,
    nominee: Person,
    account: BankAccount,
    user_id: str,
    document_ids: Dict[str, str],
    timestamp: datetime,
    device_info: Dict[str, str],
) -> List[BatchWrite]:
    """
    Build the four writes of a submission in commit order:
    member, nominee, account, audit log.
    """
    audit_id = document_ids["audit"]
    member_id = document_ids["member"]
    submitted_at = timestamp.isoformat()
    base = f"users/{user_id}"

    meta = {
        "user_id": user_id,
        "submitted_at": submitted_at,
        "audit_id": audit_id,
    }

    member_doc = {**member.model_dump(mode="json"), **meta}
    nominee_doc = {**nominee.model_dump(mode="json"), **meta, "member_ref": member_id}
    account_doc = {**build_account_document(account), **meta, "member_ref": member_id}
    audit_doc = {
        "user_id": user_id,
        "action": AUDIT_ACTION,
        "timestamp": submitted_at,
        "device_info": device_info,
    }

    return [
        BatchWrite(f"{base}/members", member_doc, member_id),
        BatchWrite(f"{base}/nominees", nominee_doc, document_ids["nominee"]),
        BatchWrite(f"{base}/accounts", account_doc, document_ids["account"]),
        BatchWrite(f"{base}/audit_logs", audit_doc, audit_id),
    ]


# ============================================================================
# PIPELINE
# ============================================================================

class SubmissionPipeline:
    """
    idle -> submitting -> succeeded | failed

    A consumed rate-limit attempt is not refunded when the submission
    fails. The caller clears the draft after a successful submission.
    """

    def __init__(
        self,
        form: KYCFormState,
        document_store: DocumentStore,
        identity: IdentityProvider,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = datetime.now,
        device_info: Optional[Dict[str, str]] = None,
    ):
        self.form = form
        self.document_store = document_store
        self.identity = identity
        self.rate_limiter = rate_limiter or get_submission_limiter()
        self._clock = clock
        self.device_info = device_info
        self.status = SubmissionStatus.IDLE
        self.error_message: Optional[str] = None
        self.last_result: Optional[SubmissionResult] = None

    @property
    def is_loading(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTING

    def _finish(self, result: SubmissionResult) -> SubmissionResult:
        self.status = result.status
        self.error_message = result.error_message
        self.last_result = result
        return result

    def _fail(self, code: SubmissionErrorCode, message: str) -> SubmissionResult:
        return self._finish(SubmissionResult(
            status=SubmissionStatus.FAILED,
            error_code=code,
            error_message=message,
        ))

    async def submit(self) -> SubmissionResult:
        """Run the submission protocol once."""
        if self.status == SubmissionStatus.SUBMITTING:
            return SubmissionResult(
                status=SubmissionStatus.SUBMITTING,
                error_code=SubmissionErrorCode.IN_PROGRESS,
                error_message=SUBMISSION_IN_PROGRESS_MESSAGE,
            )

        self.status = SubmissionStatus.SUBMITTING
        self.error_message = None

        allowed, message = check_submission_allowed(self.rate_limiter)
        if not allowed:
            logger.warning("[Submit] Rate limit reached, submission blocked")
            return self._fail(SubmissionErrorCode.RATE_LIMITED, message)

        try:
            member = sanitize_person(self.form.member, self.form.member_address)
            nominee = sanitize_person(self.form.nominee, self.form.nominee_address)
            account = sanitize_account(self.form.account)

            user_id = self.identity.current_user_id()
            if not user_id:
                logger.warning("[Submit] No signed-in user, submission blocked")
                return self._fail(SubmissionErrorCode.AUTH_REQUIRED, AUTH_REQUIRED_MESSAGE)

            timestamp = self._clock()
            document_ids = {
                name: self.document_store.new_document_id()
                for name in ("member", "nominee", "account", "audit")
            }
            writes = build_submission_batch(
                member=member,
                nominee=nominee,
                account=account,
                user_id=user_id,
                document_ids=document_ids,
                timestamp=timestamp,
                device_info=self.device_info or get_device_info(),
            )

            await self.document_store.commit_batch(writes)

        except Exception:
            logger.exception("[Submit] Form submission failed")
            return self._fail(SubmissionErrorCode.STORE_FAILURE, SUBMISSION_FAILED_MESSAGE)

        logger.info(f"[Submit] Form submitted for user {user_id}, audit {document_ids['audit']}")
        return self._finish(SubmissionResult(
            status=SubmissionStatus.SUCCEEDED,
            audit_id=document_ids["audit"],
            document_ids=document_ids,
            submitted_at=timestamp,
        ))
