from sqlalchemy import Boolean, Column, String, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from trailverse.db.base_class import Base
from trailverse.core.models import UserRole
from trailverse.core.utils import generate_uuid

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    is_active = Column(Boolean, default=True)
    role = Column(
        SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e], name="userrole"),
        default=UserRole.USER,
        nullable=False,
    )

    # Daily token budget
    daily_tokens_used = Column(Integer, nullable=False, default=0)
    total_tokens_used = Column(Integer, nullable=False, default=0)
    last_reset_date = Column(DateTime(timezone=True), nullable=True)

    converted_sessions = relationship("AnonymousSession", back_populates="converted_user")

    def __repr__(self):
        return f"<User {self.email}>"
