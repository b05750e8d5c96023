"""FastAPI dependencies: the caller's identity and the workflow service."""
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from casework.database import get_db
from casework.models.enums import Role
from casework.services.notifications import NotificationDispatcher, SmtpNotificationDispatcher
from casework.services.workflow import WorkflowService


@dataclass
class Caller:
    """Who is making this request and in which role. Resolved upstream, per request."""
    email: str
    role: Role


def get_caller(
    x_user_email: str = Header(..., alias="X-User-Email"),
    x_user_role: str = Header("student", alias="X-User-Role"),
) -> Caller:
    email = x_user_email.strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}",
        )
    return Caller(email=email, role=role)


def get_notifier() -> NotificationDispatcher:
    return SmtpNotificationDispatcher()


def get_workflow(
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> WorkflowService:
    return WorkflowService(db, notifier=notifier)
