from typing import Optional
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.orm import Session

from trailverse.core.config import settings
from trailverse.core.models import UserRole
from trailverse.core.utils import utc_now, start_of_local_day
from trailverse.models.user import User

def get_user(db: Session, id: str) -> Optional[User]:
    return db.query(User).filter(User.id == id).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()

def create_user(
    db: Session,
    *,
    email: str,
    full_name: Optional[str] = None,
    role: UserRole = UserRole.USER
) -> User:
    db_user = User(
        email=email,
        full_name=full_name,
        role=role,
        is_active=True,
        daily_tokens_used=0,
        total_tokens_used=0,
        last_reset_date=utc_now(),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def set_role(db: Session, user: User, role: UserRole) -> User:
    user.role = role
    db.commit()
    db.refresh(user)
    return user

def reset_daily_usage_if_stale(db: Session, user_id: str, now: Optional[datetime] = None) -> bool:
    """Zero the daily counter when the last reset happened before today's midnight.

    Conditional UPDATE, so two racing requests on a new day reset only once.
    Returns True when a reset happened. Caller commits.
    """
    now = now or utc_now()
    day_start = start_of_local_day(now, settings.TOKEN_RESET_TIMEZONE)
    updated = db.query(User).filter(
        User.id == user_id,
        or_(User.last_reset_date.is_(None), User.last_reset_date < day_start)
    ).update(
        {User.daily_tokens_used: 0, User.last_reset_date: now},
        synchronize_session=False
    )
    return updated > 0

def add_token_usage(db: Session, user_id: str, tokens: int, now: Optional[datetime] = None) -> Optional[User]:
    """Atomically add tokens to both the daily and the lifetime counters."""
    now = now or utc_now()
    reset_daily_usage_if_stale(db, user_id, now=now)
    db.query(User).filter(User.id == user_id).update(
        {
            User.daily_tokens_used: User.daily_tokens_used + tokens,
            User.total_tokens_used: User.total_tokens_used + tokens,
        },
        synchronize_session=False
    )
    db.commit()
    return get_user(db, user_id)
