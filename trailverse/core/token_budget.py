"""
Daily token budget for authenticated users.

The pre-check runs as a route dependency; recording runs as a background
task after the response is sent. Neither may break an AI request on its
own infrastructure failure.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from trailverse.api.deps import get_current_user, get_db
from trailverse.core.exceptions import TokenLimitExceededError
from trailverse.core.models import RESET_TIME_MESSAGE, get_daily_token_limit
from trailverse.core.utils import ensure_utc
from trailverse.crud import crud_user
from trailverse.db.session import SessionLocal
from trailverse.models.user import User

logger = logging.getLogger(__name__)


def check_token_limit(db: Session, user: User) -> None:
    """Raise TokenLimitExceededError when the user has spent today's budget."""
    daily_limit = get_daily_token_limit(user.role.value if user.role else None)
    if daily_limit is None:
        return

    if crud_user.reset_daily_usage_if_stale(db, user.id):
        db.commit()
        logger.info(f"Daily token usage reset for user {user.id}")
    db.refresh(user)

    used = user.daily_tokens_used or 0
    if used >= daily_limit:
        logger.info(f"User {user.id} over daily token limit: {used}/{daily_limit}")
        raise TokenLimitExceededError(
            daily_limit=daily_limit,
            tokens_used=used,
            remaining_tokens=max(0, daily_limit - used),
            reset_time=RESET_TIME_MESSAGE,
        )


async def enforce_token_limit(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """Route dependency. Fails open on anything but an exhausted budget."""
    try:
        check_token_limit(db, current_user)
    except TokenLimitExceededError:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Token limit check failed for user {current_user.id}, allowing request: {e}")
    return current_user


def record_token_usage(user_id: str, input_tokens: int, output_tokens: int) -> None:
    """Background task: add a finished request's tokens to the user's counters."""
    tokens = (input_tokens or 0) + (output_tokens or 0)
    if tokens <= 0:
        return

    db = SessionLocal()
    try:
        crud_user.add_token_usage(db, user_id, tokens)
        logger.info(f"Recorded {tokens} tokens for user {user_id}")
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record token usage for user {user_id}: {e}")
    finally:
        db.close()


def token_usage_summary(db: Session, user: User) -> Dict[str, Any]:
    if crud_user.reset_daily_usage_if_stale(db, user.id):
        db.commit()
    db.refresh(user)

    daily_limit: Optional[int] = get_daily_token_limit(user.role.value if user.role else None)
    used = user.daily_tokens_used or 0
    last_reset = ensure_utc(user.last_reset_date)
    return {
        "dailyLimit": daily_limit,
        "dailyTokensUsed": used,
        "remainingTokens": None if daily_limit is None else max(0, daily_limit - used),
        "totalTokensUsed": user.total_tokens_used or 0,
        "lastResetDate": last_reset.isoformat() if last_reset else None,
        "resetTime": RESET_TIME_MESSAGE,
    }
