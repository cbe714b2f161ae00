"""
Model relay: one chat request in, one normalized answer out.

Claude requests walk a fixed model ladder, newest first, and only move on
when the failure is about model availability. OpenAI gets a single call.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from trailverse.core.exceptions import (
    APIError,
    AllModelsUnavailableError,
    InvalidProviderError,
    ProviderUnavailableError,
    UpstreamAuthError,
    UpstreamRateLimitError,
    UpstreamServiceError,
)
from trailverse.core.facts import FactsBundle
from trailverse.core.models import (
    CLAUDE_MODEL_LADDER,
    CLAUDE_PROBE_MODELS,
    DEFAULT_SYSTEM_PROMPT,
    OPENAI_DEFAULT_MODEL,
    ModelProvider,
    SUPPORTED_PROVIDERS,
)
from trailverse.core.providers import ProviderRegistry
from trailverse.core.structured_logging import structured_logger, monitor_performance

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {"inputTokens": self.input_tokens, "outputTokens": self.output_tokens}


@dataclass
class RelayResult:
    content: str
    provider: str
    model: str
    usage: TokenUsage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "provider": self.provider,
            "model": self.model,
            "usage": self.usage.to_dict(),
        }


@dataclass
class RelayRequest:
    messages: List[Dict[str, str]]
    provider: str = ModelProvider.CLAUDE.value
    model: Optional[str] = None
    temperature: float = 0.4
    top_p: float = 0.9
    max_tokens: int = 2000
    system_prompt: Optional[str] = None
    facts: FactsBundle = field(default_factory=FactsBundle)
    park_name: Optional[str] = None


def build_system_prompt(
    base_prompt: Optional[str],
    inline_system: List[str],
    facts: Optional[FactsBundle],
    park_name: Optional[str] = None,
) -> str:
    prompt = base_prompt or DEFAULT_SYSTEM_PROMPT
    for content in inline_system:
        if content:
            prompt += f"\n\n{content}"

    label = park_name or "this park"
    if facts and facts.nps_facts:
        prompt += (
            f"\n\nNPS FACTS for {label}:\n{facts.nps_facts}"
            "\n\nUse these in answers. Do not invent closures or permits."
        )
    if facts and facts.weather_facts:
        prompt += (
            f"\n\nLIVE WEATHER FACTS for {label}:\n{facts.weather_facts}"
            "\nDo not guess weather beyond these facts."
        )
    return prompt


def split_system_messages(messages: List[Dict[str, str]]):
    """Separate system-role turns from the conversation."""
    system_parts = []
    conversation = []
    for message in messages:
        if message.get("role") == "system":
            system_parts.append(message.get("content") or "")
        else:
            conversation.append({"role": message.get("role"), "content": message.get("content")})
    return system_parts, conversation


def _status_of(exc: Exception) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def _error_type_of(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("type"):
            return error["type"]
    return getattr(exc, "type", None) or type(exc).__name__


def classify_upstream_error(provider: str, exc: Exception, model: Optional[str] = None) -> APIError:
    message = str(exc)
    lowered = message.lower()
    status = _status_of(exc)

    if status == 401 or "authentication" in lowered:
        return UpstreamAuthError(provider, message)
    if status == 429 or "rate limit" in lowered:
        retry_after = None
        response = getattr(exc, "response", None)
        if response is not None and getattr(response, "headers", None):
            value = response.headers.get("retry-after")
            if value and value.isdigit():
                retry_after = int(value)
        return UpstreamRateLimitError(provider, message, retry_after=retry_after)
    return UpstreamServiceError(provider, message, model=model, error_type=_error_type_of(exc))


def is_model_unavailable(exc: Exception) -> bool:
    status = _status_of(exc)
    return status == 404 or "model" in str(exc).lower()


class ModelRelay:
    def __init__(
        self,
        registry: ProviderRegistry,
        claude_models: Optional[List[str]] = None,
        openai_default_model: Optional[str] = None,
    ):
        self.registry = registry
        self.claude_models = list(claude_models or CLAUDE_MODEL_LADDER)
        self.openai_default_model = openai_default_model or OPENAI_DEFAULT_MODEL

    def client_for(self, provider: str):
        if provider not in SUPPORTED_PROVIDERS:
            raise InvalidProviderError(provider)
        client = self.registry.get(provider)
        if client is None:
            raise ProviderUnavailableError(provider)
        return client

    @monitor_performance("relay.relay")
    async def relay(self, request: RelayRequest, *, user_id: Optional[str] = None,
                    anonymous_id: Optional[str] = None) -> RelayResult:
        client = self.client_for(request.provider)

        inline_system, conversation = split_system_messages(request.messages)
        system_prompt = build_system_prompt(request.system_prompt, inline_system, request.facts, request.park_name)
        logger.info(
            f"Relaying {len(conversation)} messages to {request.provider} "
            f"(facts: nps={bool(request.facts and request.facts.nps_facts)}, "
            f"weather={bool(request.facts and request.facts.weather_facts)})"
        )

        if request.provider == ModelProvider.CLAUDE.value:
            result = await self._relay_claude(client, request, system_prompt, conversation)
        else:
            result = await self._relay_openai(client, request, system_prompt, conversation)

        structured_logger.log_ai_interaction(
            provider=result.provider,
            model=result.model,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            user_id=user_id,
            anonymous_id=anonymous_id,
        )
        return result

    async def _relay_claude(self, client, request: RelayRequest, system_prompt: str,
                            conversation: List[Dict[str, str]]) -> RelayResult:
        # Fixed ladder; a caller-supplied model is not honoured for Claude
        candidates = list(self.claude_models)
        last_error: Optional[Exception] = None

        for model in candidates:
            logger.info(f"Trying Claude model: {model}")
            try:
                response = await client.messages.create(
                    model=model,
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                    system=system_prompt,
                    messages=conversation,
                )
            except Exception as exc:
                last_error = exc
                status = _status_of(exc)
                lowered = str(exc).lower()
                # Credential and quota problems are the same for every model
                if status in (401, 429) or "authentication" in lowered or "rate limit" in lowered:
                    raise classify_upstream_error(ModelProvider.CLAUDE.value, exc, model) from exc
                if is_model_unavailable(exc):
                    structured_logger.log_model_fallback(ModelProvider.CLAUDE.value, model, str(exc))
                    continue
                raise classify_upstream_error(ModelProvider.CLAUDE.value, exc, model) from exc

            logger.info(f"Success with Claude model: {model}")
            content = "".join(
                getattr(block, "text", "") for block in response.content
                if getattr(block, "type", "text") == "text"
            )
            usage = getattr(response, "usage", None)
            return RelayResult(
                content=content,
                provider=ModelProvider.CLAUDE.value,
                model=model,
                usage=TokenUsage(
                    input_tokens=getattr(usage, "input_tokens", 0) or 0,
                    output_tokens=getattr(usage, "output_tokens", 0) or 0,
                ),
            )

        logger.error("All Claude models failed")
        raise AllModelsUnavailableError(candidates, str(last_error) if last_error else None)

    async def _relay_openai(self, client, request: RelayRequest, system_prompt: str,
                            conversation: List[Dict[str, str]]) -> RelayResult:
        model = request.model or self.openai_default_model
        messages = [{"role": "system", "content": system_prompt}] + conversation
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                top_p=request.top_p,
            )
        except Exception as exc:
            raise classify_upstream_error(ModelProvider.OPENAI.value, exc, model) from exc

        usage = getattr(response, "usage", None)
        return RelayResult(
            content=response.choices[0].message.content or "",
            provider=ModelProvider.OPENAI.value,
            model=model,
            usage=TokenUsage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )

    async def probe_claude_models(self, models: Optional[List[str]] = None) -> Dict[str, Any]:
        """Send a tiny request to each model and report which ones answer."""
        client = self.client_for(ModelProvider.CLAUDE.value)
        results = []
        for model in models or CLAUDE_PROBE_MODELS:
            try:
                await client.messages.create(
                    model=model,
                    max_tokens=10,
                    messages=[{"role": "user", "content": "Hi"}],
                )
            except Exception as exc:
                logger.info(f"Model {model} not available: {exc}")
                results.append({
                    "model": model,
                    "available": False,
                    "error": str(exc),
                    "errorType": _error_type_of(exc),
                })
                continue
            logger.info(f"Model {model} available")
            results.append({"model": model, "available": True, "error": None})

        available = [r["model"] for r in results if r["available"]]
        unavailable = [r for r in results if not r["available"]]
        return {
            "results": results,
            "summary": {
                "total": len(results),
                "available": len(available),
                "unavailable": len(unavailable),
                "availableModels": available,
                "unavailableModels": [{"model": r["model"], "error": r["error"]} for r in unavailable],
            },
        }
