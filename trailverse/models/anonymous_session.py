from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from trailverse.db.base_class import Base
from trailverse.core.utils import utc_now


class AnonymousSession(Base):
    """Trial chat session of a visitor without an account"""
    __tablename__ = "anonymous_sessions"

    id = Column(Integer, primary_key=True, index=True)
    anonymous_id = Column(String(64), nullable=False, unique=True, index=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)
    browser_fingerprint = Column(String(64), nullable=True)

    park_name = Column(String(255), nullable=False, default="General Planning")
    park_code = Column(String(32), nullable=True)
    form_data = Column(JSON, nullable=True)

    message_count = Column(Integer, nullable=False, default=0)
    last_activity = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    is_converted = Column(Boolean, nullable=False, default=False)
    converted_user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship(
        "AnonymousSessionMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AnonymousSessionMessage.id",
    )
    converted_user = relationship("User", back_populates="converted_sessions")

    def __repr__(self):
        return f"<AnonymousSession(anonymous_id={self.anonymous_id}, message_count={self.message_count})>"


class AnonymousSessionMessage(Base):
    __tablename__ = "anonymous_session_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("anonymous_sessions.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Assistant messages only
    provider = Column(String(32), nullable=True)
    model = Column(String(128), nullable=True)
    response_time_ms = Column(Integer, nullable=True)

    session = relationship("AnonymousSession", back_populates="messages")

    __table_args__ = (
        Index('ix_anonymous_session_messages_session_role', 'session_id', 'role'),
    )
