"""
Session based authentication

Users are kept in a signed session cookie. The login route is a local
development login: it upserts a user record and stores its id in the
session.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from .schemas import UserOut

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"
DEFAULT_LOGIN_EMAIL = "dev@localhost"

router = APIRouter(prefix="/api", tags=["auth"])


def _user_id_for(email: str) -> str:
    return email.strip().lower()


def session_user_id(request: Request) -> Optional[str]:
    return request.session.get(SESSION_USER_KEY)


def require_user(request: Request) -> Optional[str]:
    """Return the session user id, or raise 401 when auth is enabled

    With ``auth.enabled`` off, requests without a session pass through
    and the user id is None.
    """
    user_id = session_user_id(request)
    if user_id is None and request.app.state.config.get("auth.enabled", True):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@router.get("/login")
def login(
    request: Request,
    email: str = Query(DEFAULT_LOGIN_EMAIL),
    first_name: Optional[str] = Query(None, alias="firstName"),
    last_name: Optional[str] = Query(None, alias="lastName"),
):
    storage = request.app.state.storage
    user = storage.upsert_user(
        _user_id_for(email),
        email=email,
        first_name=first_name,
        last_name=last_name,
    )
    request.session[SESSION_USER_KEY] = user.id
    logger.info(f"User {user.id} logged in")

    redirect_to = request.app.state.config.get("auth.login_redirect", "/")
    return RedirectResponse(url=redirect_to, status_code=302)


@router.get("/logout")
def logout(request: Request):
    user_id = session_user_id(request)
    request.session.clear()
    if user_id:
        logger.info(f"User {user_id} logged out")
    return RedirectResponse(url="/", status_code=302)


@router.get("/auth/user", response_model=UserOut)
def current_user(request: Request, user_id: Optional[str] = Depends(require_user)):
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = request.app.state.storage.get_user(user_id)
    if user is None:
        # Stale cookie for a user that no longer exists
        request.session.clear()
        raise HTTPException(status_code=401, detail="Unauthorized")
    return UserOut.model_validate(user)
