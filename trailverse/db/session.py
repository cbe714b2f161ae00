from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from trailverse.core.config import settings


def _engine_kwargs(database_url: str) -> dict:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live per connection; share one across threads
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "poolclass": QueuePool,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_timeout": 30,
        "connect_args": {
            "connect_timeout": 15,
            "application_name": "trailverse_api",
        },
    }


engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def test_connection() -> bool:
    """Used by the health endpoint"""
    with engine.connect() as connection:
        connection.exec_driver_sql("SELECT 1")
    return True
