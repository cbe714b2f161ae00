import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from trailverse.core.config import settings
from trailverse.crud.crud_anonymous_session import crud_anonymous_session
from trailverse.db.session import SessionLocal

logger = logging.getLogger(__name__)

def purge_expired_sessions() -> int:
    """
    Delete anonymous sessions whose expiry has passed.
    Lookups already ignore them; this only reclaims the rows.
    """
    db = SessionLocal()
    try:
        removed = crud_anonymous_session.purge_expired(db)
        if removed:
            logger.info(f"Purged {removed} expired anonymous sessions")
        return removed
    except Exception as e:
        db.rollback()
        logger.error(f"Expired session purge failed: {str(e)}", exc_info=True)
        return 0
    finally:
        db.close()

def init_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        purge_expired_sessions,
        IntervalTrigger(minutes=settings.SESSION_PURGE_INTERVAL_MINUTES),
        id="purge_expired_sessions",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )

    return scheduler
