from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, DateTime
from trailverse.core.utils import utc_now

class Base(DeclarativeBase):
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
