from fastapi import Request, Header
from pydantic import BaseModel
from typing import Optional
import hashlib
import secrets
import time

UNKNOWN_USER = "unknown"


def generate_session_token() -> str:
    """
    Correlation key for one browsing session.
    SHA-256 of the current time in ms plus random entropy; not a credential.
    """
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(8)
    return hashlib.sha256(f"{timestamp}:{random_part}".encode()).hexdigest()


class SessionContext(BaseModel):
    """Per-request caller context passed explicitly into the banking and audit services"""
    session_id: str
    user: str = UNKNOWN_USER
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def new(cls, user: Optional[str] = None, **kwargs) -> "SessionContext":
        return cls(session_id=generate_session_token(), user=(user or UNKNOWN_USER).strip().lower(), **kwargs)


def get_session_context(
    request: Request,
    x_session_id: Optional[str] = Header(default=None),
    x_user_address: Optional[str] = Header(default=None),
) -> SessionContext:
    """FastAPI dependency building the session context from request headers"""
    return SessionContext(
        session_id=x_session_id or generate_session_token(),
        user=(x_user_address or UNKNOWN_USER).strip().lower(),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
