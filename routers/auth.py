from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, Header, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import select

from config import get_settings
from db import SessionDep
from errors import Forbidden, Unauthorized, ValidationFailed
from models import USER_BLOCKED, User
from recipients import ensure_recipient_profile
from schemas import LoginData, UserCreate, UserRead

router = APIRouter(tags=["auth"])

settings = get_settings()
serializer = URLSafeTimedSerializer(settings.secret_key)


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int) -> str:
    """
    Store user_id in the signed token.
    Example data:
        {"user_id": 3}
    """
    return serializer.dumps({"user_id": user_id})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[dict]:
    """
    Returns dict {'user_id': ...} if valid,
    or None if token is invalid/expired.
    """
    if max_age_seconds is None:
        max_age_seconds = settings.session_max_age_seconds
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadSignature:
        return None


def _extract_token(authorization: Optional[str], session_token: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
        return None
    return session_token


def get_optional_user(
    session: SessionDep,
    authorization: Optional[str] = Header(default=None),
    session_token: Optional[str] = Cookie(default=None, alias="session"),
) -> Optional[User]:
    """
    Resolve the caller from a bearer token (or the 'session' cookie).
    Returns None if no credential was sent or it is invalid/expired.
    """
    token = _extract_token(authorization, session_token)
    if token is None:
        return None

    data = verify_session_token(token)
    if not data or "user_id" not in data:
        return None

    return session.get(User, data["user_id"])


OptionalUserDep = Annotated[Optional[User], Depends(get_optional_user)]


def get_current_user(user: OptionalUserDep) -> User:
    """Like get_optional_user, but raises 401 if not logged in / invalid
    and 403 if an admin has blocked the account."""
    if user is None:
        raise Unauthorized("Not logged in")
    if user.status == USER_BLOCKED:
        raise Forbidden("This account has been blocked")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def require_admin(user: CurrentUserDep) -> User:
    if not user.is_admin:
        raise Forbidden()
    return user


AdminDep = Annotated[User, Depends(require_admin)]


def require_donor(user: CurrentUserDep) -> User:
    if not user.is_donor:
        raise Forbidden("Only donors can do this")
    return user


DonorDep = Annotated[User, Depends(require_donor)]


def require_recipient(user: CurrentUserDep) -> User:
    if not user.is_recipient:
        raise Forbidden("Only recipient organizations can do this")
    return user


RecipientDep = Annotated[User, Depends(require_recipient)]


def _is_bootstrap_admin(email: str) -> bool:
    return bool(settings.admin_email) and email.lower() == settings.admin_email.lower()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="session",
        value=token,
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
    )


@router.post("/register", status_code=201)
def register(user_in: UserCreate, session: SessionDep, response: Response):
    """
    Register a new donor or recipient organization with a hashed password.
    Recipients get an (empty) recipient profile straight away.
    """
    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()
    if existing:
        raise ValidationFailed("Email already registered")

    user = User(
        email=user_in.email,
        name=user_in.name,
        organization_name=user_in.organization_name,
        password_hash=hash_password(user_in.password),
        is_donor=user_in.role == "donor",
        is_recipient=user_in.role == "recipient",
        is_admin=_is_bootstrap_admin(user_in.email),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.is_recipient:
        ensure_recipient_profile(session, user)

    token = create_session_token(user.id)
    _set_session_cookie(response, token)
    return {
        "message": "Registration successful",
        "access_token": token,
        "token_type": "bearer",
        "user": UserRead.model_validate(user),
    }


@router.post("/login")
def login(payload: LoginData, session: SessionDep, response: Response):
    """
    Log in with email + password. Returns a bearer token and also sets a
    signed 'session' cookie.
    """
    user = session.exec(
        select(User).where(User.email == payload.email)
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    if user.status == USER_BLOCKED:
        raise Forbidden("This account has been blocked")

    token = create_session_token(user.id)
    _set_session_cookie(response, token)
    return {
        "message": "Login successful",
        "access_token": token,
        "token_type": "bearer",
        "user": UserRead.model_validate(user),
    }


@router.post("/logout")
def logout(response: Response):
    """
    Clear the session cookie.
    """
    response.delete_cookie("session")
    return {"message": "Logged out"}


@router.get("/me", response_model=UserRead)
def read_me(current: CurrentUserDep):
    """
    Get info about the currently logged-in user.
    """
    return current
