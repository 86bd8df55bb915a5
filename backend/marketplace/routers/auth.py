from fastapi import APIRouter, Depends, HTTPException

from marketplace.auth import create_access_token, require_session
from marketplace.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse, AuthSignupRequest, Session
from marketplace.routers.common import raise_store_http_error
from marketplace.services.account_store import account_store
from marketplace.services.errors import MarketplaceStoreError

router = APIRouter(prefix="/auth", tags=["auth"])


def _login_response(session: Session) -> AuthLoginResponse:
    token, expires_at = create_access_token(user_id=session.user_id)
    return AuthLoginResponse(
        access_token=token,
        user_id=session.user_id,
        display_name=session.display_name,
        user_type=session.user_type,
        admin=session.is_admin,
        expires_at=expires_at,
    )


@router.post("/signup", response_model=AuthLoginResponse)
def signup(payload: AuthSignupRequest):
    try:
        session = account_store.signup(
            email=payload.email,
            display_name=payload.display_name,
            password=payload.password,
            confirm_password=payload.confirm_password,
            user_type=payload.user_type,
        )
        return _login_response(session)
    except MarketplaceStoreError as exc:
        raise_store_http_error(exc)


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    if not payload.email.strip() or not payload.password:
        raise HTTPException(status_code=400, detail="email and password are required")
    session = account_store.authenticate(email=payload.email, password=payload.password)
    if session is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _login_response(session)


@router.get("/me", response_model=AuthMeResponse)
def me(session: Session = Depends(require_session)):
    return AuthMeResponse(
        user_id=session.user_id,
        display_name=session.display_name,
        user_type=session.user_type,
        admin=session.is_admin,
    )
