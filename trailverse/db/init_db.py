from sqlalchemy.exc import OperationalError
from trailverse.db.base import Base
from trailverse.db.session import engine, SessionLocal
from trailverse.crud import crud_user
from trailverse.core.config import settings
from trailverse.core.models import UserRole
import logging
import time

logger = logging.getLogger(__name__)

def create_tables(max_retries: int = 5, backoff_seconds: float = 5.0) -> None:
    for attempt in range(max_retries):
        try:
            Base.metadata.create_all(bind=engine)
            return
        except OperationalError as e:
            logger.warning(f"Database connection failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt == max_retries - 1:
                raise
            time.sleep(backoff_seconds * (attempt + 1))

def seed_admin() -> None:
    """Create or promote the INITIAL_ADMIN_EMAIL account."""
    if not settings.INITIAL_ADMIN_EMAIL:
        return

    db = SessionLocal()
    try:
        admin = crud_user.get_user_by_email(db, email=settings.INITIAL_ADMIN_EMAIL)
        if admin is None:
            crud_user.create_user(
                db,
                email=settings.INITIAL_ADMIN_EMAIL,
                full_name=settings.INITIAL_ADMIN_NAME,
                role=UserRole.ADMIN,
            )
            logger.info("Admin user created")
        elif admin.role != UserRole.ADMIN:
            crud_user.set_role(db, admin, UserRole.ADMIN)
            logger.info("Existing user promoted to admin")
        else:
            logger.info("Admin user already exists")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def init_db() -> None:
    create_tables()
    seed_admin()
    logger.info("Database initialization completed successfully")

if __name__ == "__main__":
    init_db()
