"""
FastAPI Backend for the KYC Onboarding Form

Provides REST API endpoints for:
- Email/password sign-in
- Reading and updating the onboarding form section by section
- Wizard navigation (next / previous)
- Live single-field validation
- Form submission and draft clearing
"""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from config.settings import settings
from config.form_schema import RAW_FIELD_MAX_LENGTH, FormSection
from backend.auth import AuthError, AuthErrorCode, AuthService
from backend.form_session import KYCFormSession, SessionRegistry
from backend.form_validator import FieldKind, validate_field
from backend.sanitizer import sanitize
from backend.submission import SubmissionErrorCode

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


# ============================================================================
# SERVICE INSTANCES
# ============================================================================

_auth_service: Optional[AuthService] = None
_registry: Optional[SessionRegistry] = None
_tokens: Dict[str, str] = {}


def get_auth_service() -> AuthService:
    """Get singleton auth service seeded from AUTH_USERS."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def get_session_registry() -> SessionRegistry:
    """Get singleton form session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _registry is not None:
        _registry.close_all()


# ============================================================================
# APP SETUP
# ============================================================================

app = FastAPI(
    title="KYC Onboarding Form API",
    description="Member, nominee and bank detail collection with draft auto-save",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    api_version: str
    app_name: str


class SignInRequest(BaseModel):
    email_or_phone: str
    password: str


class SignInResponse(BaseModel):
    success: bool
    token: str
    user_id: str
    draft_restored: bool


class FieldValidationRequest(BaseModel):
    kind: FieldKind
    value: str = Field("", max_length=RAW_FIELD_MAX_LENGTH)


class FieldValidationResponse(BaseModel):
    kind: str
    is_valid: bool
    sanitized: str


class NavigationResponse(BaseModel):
    moved: bool
    current_stage: str
    errors: Dict[str, str] = {}


class SubmitResponse(BaseModel):
    """Response from form submission."""
    success: bool
    status: str
    message: str
    audit_id: Optional[str] = None


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the bearer token issued at sign-in."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="User authentication required")

    user_id = _tokens.get(authorization[7:].strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session token")
    return user_id


def get_session(user_id: str = Depends(get_current_user_id)) -> KYCFormSession:
    return get_session_registry().get_or_create(user_id)


def _form_payload(session: KYCFormSession) -> Dict[str, Any]:
    return {
        "data": {
            section.value: session.form.get_section(section).model_dump(mode="json")
            for section in FormSection
        },
        "status": session.status(),
    }


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/", response_model=HealthResponse)
async def root():
    """Health check endpoint."""
    return HealthResponse(status="healthy", api_version=settings.APP_VERSION, app_name=settings.APP_NAME)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", api_version=settings.APP_VERSION, app_name=settings.APP_NAME)


def _issue_token(user_id: str) -> str:
    """New bearer token for a user; any earlier token of that user is revoked."""
    for token in [t for t, uid in _tokens.items() if uid == user_id]:
        del _tokens[token]
    token = secrets.token_urlsafe(24)
    _tokens[token] = user_id
    return token


@app.post("/auth/sign-in", response_model=SignInResponse)
async def sign_in(request: SignInRequest):
    """Sign in with email and password and open the user's form session."""
    auth = get_auth_service()
    try:
        user = auth.sign_in(request.email_or_phone, request.password)
    except AuthError as e:
        status_code = 429 if e.code == AuthErrorCode.TOO_MANY_REQUESTS else 401
        raise HTTPException(status_code=status_code, detail=e.message)

    token = _issue_token(user.uid)

    registry = get_session_registry()
    existing = registry.get(user.uid)
    session = registry.get_or_create(user.uid)
    restored = existing is None and session.auto_save.last_auto_saved is not None

    return SignInResponse(success=True, token=token, user_id=user.uid, draft_restored=restored)


@app.post("/auth/sign-out")
async def sign_out(authorization: Optional[str] = Header(None), user_id: str = Depends(get_current_user_id)):
    """Write any pending draft, close the session and revoke the token."""
    registry = get_session_registry()
    session = registry.get(user_id)
    if session is not None:
        session.auto_save.flush()
        registry.close(user_id)

    _tokens.pop(authorization[7:].strip(), None)
    return {"success": True}


@app.get("/form")
async def get_form(session: KYCFormSession = Depends(get_session)):
    """Current form data and wizard status."""
    return _form_payload(session)


@app.put("/form/{section}")
async def update_form_section(
    section: str,
    changes: Dict[str, Any],
    session: KYCFormSession = Depends(get_session)
):
    """Merge field values into one form section."""
    try:
        form_section = FormSection(section)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown form section: {section}")

    try:
        session.form.update_section(form_section, changes)
    except KeyError as e:
        raise HTTPException(status_code=422, detail=str(e).strip("'\""))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False))
    except Exception as e:
        logger.exception(f"[Form] Failed to update {section}")
        raise HTTPException(status_code=500, detail=f"Failed to update form: {str(e)}")

    return _form_payload(session)


@app.post("/form/next", response_model=NavigationResponse)
async def next_stage(session: KYCFormSession = Depends(get_session)):
    """Advance the wizard when the current stage is valid."""
    form = session.form
    errors = form.section_errors(form.current_stage)
    moved = form.next()
    return NavigationResponse(
        moved=moved,
        current_stage=form.current_stage.value,
        errors={} if moved else errors,
    )


@app.post("/form/previous", response_model=NavigationResponse)
async def previous_stage(session: KYCFormSession = Depends(get_session)):
    """Go back one wizard stage."""
    stage = session.form.previous()
    return NavigationResponse(moved=True, current_stage=stage.value)


@app.post("/form/validate-field", response_model=FieldValidationResponse)
async def validate_single_field(request: FieldValidationRequest, user_id: str = Depends(get_current_user_id)):
    """Validate a single field value in real-time."""
    return FieldValidationResponse(
        kind=request.kind.value,
        is_valid=validate_field(request.kind, request.value),
        sanitized=sanitize(request.value),
    )


@app.post("/form/submit", response_model=SubmitResponse)
async def submit_form(session: KYCFormSession = Depends(get_session)):
    """Submit the completed form."""
    try:
        result = await session.submit()
    except Exception as e:
        logger.exception("[Submit] Unexpected submission error")
        raise HTTPException(status_code=500, detail=str(e))

    if result.error_code == SubmissionErrorCode.RATE_LIMITED:
        raise HTTPException(status_code=429, detail=result.error_message)
    if result.error_code == SubmissionErrorCode.IN_PROGRESS:
        raise HTTPException(status_code=409, detail=result.error_message)
    if result.error_code == SubmissionErrorCode.AUTH_REQUIRED:
        raise HTTPException(status_code=401, detail=result.error_message)

    return SubmitResponse(
        success=result.success,
        status=result.status.value,
        message="Form submitted successfully" if result.success else result.error_message,
        audit_id=result.audit_id,
    )


@app.delete("/form/draft")
async def clear_draft(session: KYCFormSession = Depends(get_session)):
    """Discard the saved draft."""
    session.clear_draft()
    return {"success": True}


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
