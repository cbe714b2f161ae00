# Import all the models, so that Base has them before being imported by Alembic
from trailverse.db.base_class import Base  # noqa
from trailverse.models.user import User  # noqa
from trailverse.models.anonymous_session import AnonymousSession, AnonymousSessionMessage  # noqa
