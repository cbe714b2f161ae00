import logging
import time
from typing import Any, Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from trailverse.api.deps import get_current_user, get_db, get_facts_aggregator, get_model_relay, get_provider_registry
from trailverse.core.exceptions import NotFoundError
from trailverse.core.facts import FactsAggregator, FactsBundle
from trailverse.core.fingerprint import derive_identity
from trailverse.core.models import PROVIDER_CATALOG, ModelProvider
from trailverse.core.providers import ProviderRegistry
from trailverse.core.relay import ModelRelay, RelayRequest
from trailverse.core.token_budget import enforce_token_limit, record_token_usage, token_usage_summary
from trailverse.core.utils import ensure_utc
from trailverse.crud.crud_anonymous_session import crud_anonymous_session
from trailverse.models.user import User
from trailverse.schemas.chat import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter()

CONVERSION_MESSAGE = """Hey traveler! 👋

Thanks for your follow-up question about "{question}". I'd love to help you plan more amazing adventures, but as an unauthenticated user, you can only ask {limit} questions.

You have two options to continue:

🚀 **Create an Account (Recommended)**
• Ask unlimited questions
• Save your trip plans
• Access your conversation history
• Get personalized recommendations

⏰ **Wait {ttl} Hours (Free)**
• Get {limit} fresh questions automatically
• No account required
• Completely free
• Session resets automatically

Ready to continue planning? 🚀"""


async def _gather_facts(facts: FactsAggregator, body: ChatRequest) -> FactsBundle:
    metadata = body.metadata
    try:
        return await facts.fetch_relevant_facts(
            user_message=body.last_user_message,
            park_code=metadata.park_code,
            lat=metadata.lat,
            lon=metadata.lon,
            park_name=metadata.park_name,
        )
    except Exception as e:
        # Facts are optional context; the chat goes on without them
        logger.error(f"Facts fetching error: {e}")
        return FactsBundle()


def _relay_request(body: ChatRequest, facts: FactsBundle) -> RelayRequest:
    return RelayRequest(
        messages=[m.dict() for m in body.messages],
        provider=body.provider,
        model=body.model,
        temperature=body.temperature,
        top_p=body.top_p,
        max_tokens=body.max_tokens,
        system_prompt=body.system_prompt,
        facts=facts,
        park_name=body.metadata.park_name,
    )


def _provider_listing(registry: ProviderRegistry):
    providers = [PROVIDER_CATALOG[p].to_dict(available=True) for p in registry.available_providers()]
    if not providers:
        return JSONResponse(status_code=503, content={"error": "No AI providers configured", "providers": []})
    return {"providers": providers}


@router.post("/chat")
async def chat(
    body: ChatRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(enforce_token_limit),
    relay: ModelRelay = Depends(get_model_relay),
    facts: FactsAggregator = Depends(get_facts_aggregator),
):
    """Authenticated chat. Token usage is recorded after the response is sent."""
    relay.client_for(body.provider)

    bundle = await _gather_facts(facts, body)
    result = await relay.relay(_relay_request(body, bundle), user_id=current_user.id)

    background_tasks.add_task(
        record_token_usage,
        current_user.id,
        result.usage.input_tokens,
        result.usage.output_tokens,
    )
    return {"data": result.to_dict()}


@router.post("/chat-anonymous")
async def chat_anonymous(
    request: Request,
    body: ChatRequest,
    db: Session = Depends(get_db),
    relay: ModelRelay = Depends(get_model_relay),
    facts: FactsAggregator = Depends(get_facts_aggregator),
):
    """
    Trial chat without an account.

    The incoming user turn is stored before the gate is checked, so the
    message that reaches the limit is kept but answered with a sign-up
    prompt instead of a model call.
    """
    identity = derive_identity(request)
    metadata = body.metadata

    session = crud_anonymous_session.find_or_create(db, identity.anonymous_id, seed={
        "ip_address": identity.ip_address,
        "user_agent": identity.user_agent,
        "browser_fingerprint": identity.browser_fingerprint,
        "park_name": metadata.park_name,
        "park_code": metadata.park_code,
        "form_data": metadata.form_data or {},
    })

    last_message = body.messages[-1] if body.messages else None
    if last_message is not None and last_message.role == "user":
        session = crud_anonymous_session.add_message(db, session, role="user", content=last_message.content)

    if not crud_anonymous_session.can_send_message(db, session):
        logger.info(f"Anonymous session {session.anonymous_id} reached the message limit")
        question = last_message.content if last_message is not None else ""
        return {"data": {
            "content": CONVERSION_MESSAGE.format(
                question=question,
                limit=crud_anonymous_session.message_limit,
                ttl=int(crud_anonymous_session.ttl.total_seconds() // 3600),
            ),
            "provider": "system",
            "model": "conversion",
            "isConversionMessage": True,
            "anonymousId": session.anonymous_id,
            "messageCount": crud_anonymous_session.count_user_messages(db, session),
            "canSendMore": False,
        }}

    relay.client_for(body.provider)
    bundle = await _gather_facts(facts, body)

    started = time.monotonic()
    result = await relay.relay(_relay_request(body, bundle), anonymous_id=session.anonymous_id)
    response_time_ms = int((time.monotonic() - started) * 1000)

    session = crud_anonymous_session.add_message(
        db,
        session,
        role="assistant",
        content=result.content,
        provider=result.provider,
        model=result.model,
        response_time_ms=response_time_ms,
    )

    return {"data": {
        **result.to_dict(),
        "anonymousId": session.anonymous_id,
        "messageCount": crud_anonymous_session.count_user_messages(db, session),
        "canSendMore": crud_anonymous_session.can_send_message(db, session),
    }}


@router.get("/session-status/{anonymous_id}")
def session_status(anonymous_id: str, db: Session = Depends(get_db)):
    session = crud_anonymous_session.get_active(db, anonymous_id)
    if session is None:
        return JSONResponse(
            status_code=404,
            content={"error": "Session not found", "canSendMore": False, "messageCount": 0},
        )

    return {
        "canSendMore": crud_anonymous_session.can_send_message(db, session),
        "messageCount": crud_anonymous_session.count_user_messages(db, session),
        "isConverted": session.is_converted,
        "lastActivity": ensure_utc(session.last_activity).isoformat(),
        "parkName": session.park_name,
    }


@router.post("/session/{anonymous_id}/convert")
def convert_session(
    anonymous_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Link an anonymous session to the caller's account and hand back its conversation."""
    session = crud_anonymous_session.get_active(db, anonymous_id)
    if session is None:
        raise NotFoundError("Anonymous session", anonymous_id)

    session = crud_anonymous_session.mark_converted(db, session, current_user.id)
    converted_at = ensure_utc(session.converted_at)
    return {"data": {
        "anonymousId": session.anonymous_id,
        "isConverted": session.is_converted,
        "convertedUserId": session.converted_user_id,
        "convertedAt": converted_at.isoformat() if converted_at else None,
        "summary": crud_anonymous_session.get_conversation_summary(db, session),
    }}


@router.get("/providers")
def list_providers(
    current_user: User = Depends(get_current_user),
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    return _provider_listing(registry)


@router.get("/providers-anonymous")
def list_providers_anonymous(registry: ProviderRegistry = Depends(get_provider_registry)):
    return _provider_listing(registry)


@router.get("/token-usage")
def token_usage(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"success": True, "tokenUsage": token_usage_summary(db, current_user)}


@router.get("/test-models")
async def test_models(
    current_user: User = Depends(get_current_user),
    registry: ProviderRegistry = Depends(get_provider_registry),
    relay: ModelRelay = Depends(get_model_relay),
):
    if not registry.is_configured(ModelProvider.CLAUDE.value):
        return JSONResponse(status_code=503, content={"error": "Claude not configured"})
    return await relay.probe_claude_models()
