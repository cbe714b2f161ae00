from typing import Optional, Dict, Any
from datetime import datetime, timedelta
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trailverse.core.config import settings
from trailverse.core.utils import utc_now, ensure_utc
from trailverse.models.anonymous_session import AnonymousSession, AnonymousSessionMessage

logger = logging.getLogger(__name__)

DEFAULT_PARK_NAME = "General Planning"


class CRUDAnonymousSession:
    def __init__(self, message_limit: int = None, ttl_hours: int = None):
        self.message_limit = message_limit if message_limit is not None else settings.ANONYMOUS_MESSAGE_LIMIT
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.ANONYMOUS_SESSION_TTL_HOURS)

    def get_active(
        self,
        db: Session,
        anonymous_id: str,
        now: Optional[datetime] = None
    ) -> Optional[AnonymousSession]:
        """Session by id, ignoring rows past their expiry"""
        now = now or utc_now()
        return db.query(AnonymousSession).filter(
            AnonymousSession.anonymous_id == anonymous_id,
            AnonymousSession.expires_at > now
        ).first()

    def find_or_create(
        self,
        db: Session,
        anonymous_id: str,
        seed: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> AnonymousSession:
        """
        Return the live session for anonymous_id or create it from seed.
        Seed values (ip, user agent, fingerprint, park context) are only
        written on creation; later calls never overwrite them.
        """
        now = now or utc_now()
        session = self.get_active(db, anonymous_id, now=now)
        if session:
            return session

        # An expired row still holds the unique key
        self._delete_sessions(db, AnonymousSession.anonymous_id == anonymous_id)

        seed = seed or {}
        session = AnonymousSession(
            anonymous_id=anonymous_id,
            ip_address=seed.get("ip_address") or "unknown",
            user_agent=seed.get("user_agent"),
            browser_fingerprint=seed.get("browser_fingerprint"),
            park_name=seed.get("park_name") or DEFAULT_PARK_NAME,
            park_code=seed.get("park_code"),
            form_data=seed.get("form_data"),
            message_count=0,
            last_activity=now,
            expires_at=now + self.ttl,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # Lost a creation race with a concurrent request for the same id
            db.rollback()
            existing = self.get_active(db, anonymous_id, now=now)
            if existing is None:
                raise
            return existing
        db.refresh(session)
        logger.info(f"Created anonymous session {anonymous_id}")
        return session

    def add_message(
        self,
        db: Session,
        session: AnonymousSession,
        *,
        role: str,
        content: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        response_time_ms: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> AnonymousSession:
        """Append a message and refresh message_count, last_activity and expires_at"""
        now = now or utc_now()
        db.add(AnonymousSessionMessage(
            session_id=session.id,
            role=role,
            content=content,
            timestamp=now,
            provider=provider,
            model=model,
            response_time_ms=response_time_ms,
        ))
        db.flush()

        # Count computed by the database so concurrent appends are not lost
        message_total = (
            select(func.count(AnonymousSessionMessage.id))
            .where(AnonymousSessionMessage.session_id == session.id)
            .scalar_subquery()
        )
        db.query(AnonymousSession).filter(AnonymousSession.id == session.id).update(
            {
                AnonymousSession.message_count: message_total,
                AnonymousSession.last_activity: now,
                AnonymousSession.expires_at: now + self.ttl,
            },
            synchronize_session=False
        )
        db.commit()
        db.refresh(session)
        return session

    def count_user_messages(self, db: Session, session: AnonymousSession) -> int:
        return db.query(func.count(AnonymousSessionMessage.id)).filter(
            AnonymousSessionMessage.session_id == session.id,
            AnonymousSessionMessage.role == "user"
        ).scalar() or 0

    def can_send_message(self, db: Session, session: AnonymousSession) -> bool:
        """True while fewer than message_limit user messages are stored"""
        return self.count_user_messages(db, session) < self.message_limit

    def mark_converted(
        self,
        db: Session,
        session: AnonymousSession,
        user_id: str,
        now: Optional[datetime] = None
    ) -> AnonymousSession:
        """Link the session to an account. Only the first call has an effect."""
        now = now or utc_now()
        db.query(AnonymousSession).filter(
            AnonymousSession.id == session.id,
            AnonymousSession.is_converted.is_(False)
        ).update(
            {
                AnonymousSession.is_converted: True,
                AnonymousSession.converted_user_id: user_id,
                AnonymousSession.converted_at: now,
            },
            synchronize_session=False
        )
        db.commit()
        db.refresh(session)
        return session

    def get_conversation_summary(self, db: Session, session: AnonymousSession) -> Dict[str, Any]:
        messages = db.query(AnonymousSessionMessage).filter(
            AnonymousSessionMessage.session_id == session.id
        ).order_by(AnonymousSessionMessage.id).all()
        user_messages = [m for m in messages if m.role == "user"]
        assistant_messages = [m for m in messages if m.role == "assistant"]

        return {
            "totalMessages": len(messages),
            "userMessageCount": len(user_messages),
            "assistantMessageCount": len(assistant_messages),
            "lastUserMessage": user_messages[-1].content if user_messages else "",
            "lastAssistantMessage": assistant_messages[-1].content if assistant_messages else "",
            "parkName": session.park_name,
            "formData": session.form_data,
            "messages": [
                {
                    "role": m.role,
                    "content": m.content,
                    "timestamp": ensure_utc(m.timestamp).isoformat(),
                    "provider": m.provider,
                    "model": m.model,
                    "responseTime": m.response_time_ms,
                }
                for m in messages
            ],
        }

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        """Bulk delete sessions past their expiry. Returns the number removed."""
        now = now or utc_now()
        removed = self._delete_sessions(db, AnonymousSession.expires_at <= now)
        db.commit()
        return removed

    def _delete_sessions(self, db: Session, criterion) -> int:
        # Messages first: SQLite does not enforce ON DELETE CASCADE by default
        doomed = select(AnonymousSession.id).where(criterion)
        db.query(AnonymousSessionMessage).filter(
            AnonymousSessionMessage.session_id.in_(doomed)
        ).delete(synchronize_session="fetch")
        return db.query(AnonymousSession).filter(criterion).delete(synchronize_session="fetch")


crud_anonymous_session = CRUDAnonymousSession()
