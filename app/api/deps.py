"""
API Dependencies Module

This module provides FastAPI dependency functions for identity resolution and for
the completion notifier. It implements a dual authentication strategy supporting
both bearer tokens (for API clients) and HTTP-only cookies (for browser clients).
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel import Session

from app.core.config import settings
from app.core.security import decode_access_token
from app.db.session import get_db, new_session
from app.models.employee import Employee, UserAccount
from app.schemas.identity import Identity
from app.services.notification_sink import get_notification_sink
from app.services.notifier import CompletionNotifier

# auto_error=False allows us to check cookies as a fallback
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False,
)


def get_identity(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2),
) -> Identity:
    """
    Dependency that resolves the requester's identity from a bearer token.

    The bearer token in the Authorization header wins; otherwise the
    access_token cookie is used. The token subject is a user account id, which
    links to at most one employee.

    Args:
        request: FastAPI request object (used to access cookies)
        db: Database session
        token: Optional bearer token from Authorization header

    Returns:
        Identity: role, employee id, department, employee code and name

    Raises:
        HTTPException 401: If no token is provided or the account no longer exists
        HTTPException 403: If the token is invalid or expired
    """
    if not token:
        token = request.cookies.get("access_token")
        # Cookie format is "Bearer <token>"
        if token and token.startswith("Bearer "):
            token = token.replace("Bearer ", "")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        account_id = decode_access_token(token).get("sub")
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        )

    account = db.get(UserAccount, account_id) if account_id else None
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    employee = db.get(Employee, account.employee_id) if account.employee_id else None
    return Identity(
        role=account.role,
        employee_id=employee.id if employee else None,
        department=employee.department if employee else None,
        emp_code=employee.emp_code if employee else None,
        employee_name=employee.name if employee else None,
    )


def get_completion_notifier() -> CompletionNotifier:
    """Notifier used by project updates; overridden in tests."""
    return CompletionNotifier(
        sink=get_notification_sink(),
        session_factory=new_session,
        max_workers=settings.NOTIFY_MAX_WORKERS,
    )
