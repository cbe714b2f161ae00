from trailverse.models.user import User, UserRole
from trailverse.models.anonymous_session import AnonymousSession, AnonymousSessionMessage

__all__ = [
    "User",
    "UserRole",
    "AnonymousSession",
    "AnonymousSessionMessage",
]
