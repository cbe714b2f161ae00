from typing import Generator
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from trailverse.db.session import SessionLocal
from trailverse.core.exceptions import AuthenticationError
from trailverse.core.facts import FactsAggregator, facts_aggregator
from trailverse.core.providers import ProviderRegistry
from trailverse.core.relay import ModelRelay
from trailverse.core.security import oauth2_scheme, decode_access_token
from trailverse.crud import crud_user
from trailverse.models.user import User

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

async def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme)
) -> User:
    user_id = decode_access_token(token)
    if user_id is None:
        raise AuthenticationError("Could not validate credentials")

    user = crud_user.get_user(db, id=user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Could not validate credentials")
    return user

def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry

def get_model_relay(registry: ProviderRegistry = Depends(get_provider_registry)) -> ModelRelay:
    return ModelRelay(registry)

def get_facts_aggregator() -> FactsAggregator:
    return facts_aggregator
