"""Shared FastAPI dependencies for database access and authentication."""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from assessment_hub import roles
from assessment_hub.database import get_session
from assessment_hub.models import User


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    """Return the currently logged-in user based on the session cookie, if any."""
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    user = session.get(User, user_id)
    if not user or not user.is_active:
        # Clear any stale session
        request.session.clear()
        return None
    return user


def require_login(
    request: Request, current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Ensure that a user is logged in.

    API callers get a 401; page requests are redirected to the login form.
    """
    if current_user is None:
        if request.url.path.startswith("/api/"):
            raise HTTPException(status_code=401, detail="Not authenticated")
        raise HTTPException(status_code=303, headers={"Location": "/login"})
    return current_user


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(current_user: User = Depends(require_login)) -> User:
        if current_user.role not in required_roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return wrapper


def require_permission(permission: str):
    """Dependency factory that enforces a permission from the role matrix."""

    def wrapper(current_user: User = Depends(require_login)) -> User:
        if not roles.has_permission(current_user.role, permission):
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return wrapper


def sees_all_companies(user: User) -> bool:
    return user.role == roles.SUPER_ADMIN


def in_company_scope(user: User, company_id: Optional[int]) -> bool:
    """Whether ``user`` may see records that belong to ``company_id``."""
    return sees_all_companies(user) or user.company_id == company_id
