# Filename: orgdrive/auth.py
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from typing import Optional
from sqlmodel import Session, select

from .config import settings
from .models import User
from .db import get_session

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# header tokens come through the scheme; browsers fall back to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

ALGORITHM = settings.jwt_algorithm
SECRET_KEY = settings.secret_key
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes
TOKEN_COOKIE = "access_token"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Signed token whose subject is the user id."""
    issued = datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "sub": str(user.id),
        "org": user.organization_id,
        "exp": int(expire.timestamp()),
        "iat": int(issued.timestamp()),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_user_id(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        return None
    return int(subject)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    # emails are stored lowercased
    return session.exec(select(User).where(User.email == email.strip().lower())).first()


def authenticate_user(session: Session, email: str, password: str) -> User:
    user = get_user_by_email(session, email)
    if not user or not user.active or not verify_password(password, user.hashed_password):
        raise _unauthorized("Incorrect email or password")
    return user


def _cookie_token(request: Request) -> Optional[str]:
    cookie = request.cookies.get(TOKEN_COOKIE)
    if cookie and cookie.lower().startswith("bearer "):
        return cookie.split(" ", 1)[1]
    return cookie


def get_current_user(
    request: Request,
    header_token: Optional[str] = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    token = header_token or _cookie_token(request)
    if not token:
        raise _unauthorized()

    user_id = decode_user_id(token)
    if user_id is None:
        raise _unauthorized()

    user = session.get(User, user_id)
    if user is None or not user.active:
        raise _unauthorized()
    return user
