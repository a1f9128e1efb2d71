# Filename: orgdrive/routers/auth.py
import logging

from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session

from ..auth import (
    TOKEN_COOKIE,
    authenticate_user,
    create_access_token,
    get_current_user,
    get_password_hash,
    get_user_by_email,
)
from ..db import get_session, get_storage
from ..errors import ConflictError, DriveError, ForbiddenError, NotFoundError
from ..models import Organization, User
from ..schemas import RegisterRequest, Token, UserOut
from ..services.organizations import OrganizationService
from ..storage import StorageLayout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    session: Session = Depends(get_session),
    storage: StorageLayout = Depends(get_storage),
):
    org = session.get(Organization, data.organization_id)
    if not org or not org.active:
        raise NotFoundError("Organization not found or inactive", organization_id=data.organization_id)
    if org.max_users and len(org.members) >= org.max_users:
        raise ForbiddenError(
            f"Organization has reached maximum users limit ({org.max_users})",
            max_users=org.max_users,
        )
    if get_user_by_email(session, data.email):
        raise ConflictError("Email already registered")

    user = User(
        name=data.name.strip(),
        email=data.email.lower(),
        hashed_password=get_password_hash(data.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    try:
        OrganizationService(session, storage).add_member(org.id, user.id)
    except DriveError:
        # no half-registered accounts: the email stays free for a retry
        session.delete(user)
        session.commit()
        raise
    session.refresh(user)
    logger.info("Registered user %s in organization %s", user.id, org.id)
    return user


@router.post("/token", response_model=Token)
def login_token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    # the OAuth2 form calls it "username"; accounts are keyed by email
    user = authenticate_user(session, form_data.username, form_data.password)
    return {"access_token": create_access_token(user), "token_type": "bearer"}


# JSON login that sets HttpOnly cookie (works for browsers)
@router.post("/login-cookie")
def login_cookie(
    response: Response,
    email: str = Body(...),
    password: str = Body(...),
    remember: bool = Body(False),
    session: Session = Depends(get_session),
):
    user = authenticate_user(session, email, password)
    token = create_access_token(user)
    max_age = 60 * 60 * 24 * 30 if remember else None
    response.set_cookie(TOKEN_COOKIE, token, httponly=True, secure=False, samesite="lax", max_age=max_age)
    return {"status": "ok"}


@router.post("/logout-cookie")
def logout_cookie(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"status": "ok"}


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
