"""Services package for Tri-Stack online play."""

from .replication import Participant
from .session_service import SessionService, SessionStore, Session, ReconnectResult

__all__ = [
    "Participant",
    "SessionService",
    "SessionStore",
    "Session",
    "ReconnectResult",
]
