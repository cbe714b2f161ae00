import pytest

from trailverse.core.exceptions import (
    AllModelsUnavailableError,
    ErrorCode,
    InvalidProviderError,
    ProviderUnavailableError,
    UpstreamAuthError,
    UpstreamRateLimitError,
    UpstreamServiceError,
)
from trailverse.core.facts import FactsBundle
from trailverse.core.models import CLAUDE_MODEL_LADDER, CLAUDE_PROBE_MODELS
from trailverse.core.providers import ProviderRegistry
from trailverse.core.relay import ModelRelay, RelayRequest, build_system_prompt
from tests.conftest import FakeClaudeClient, FakeOpenAIClient, FakeUpstreamError


def not_found(model):
    return FakeUpstreamError(f"model: {model} not found", status_code=404)


def relay_with(claude=None, openai=None):
    return ModelRelay(ProviderRegistry({"claude": claude, "openai": openai}))


def chat(provider="claude", **kwargs):
    return RelayRequest(messages=[{"role": "user", "content": "Plan two days in Zion"}], provider=provider, **kwargs)


@pytest.mark.asyncio
async def test_claude_ladder_falls_back_on_model_errors():
    claude = FakeClaudeClient(outcomes={
        CLAUDE_MODEL_LADDER[0]: not_found(CLAUDE_MODEL_LADDER[0]),
        CLAUDE_MODEL_LADDER[1]: not_found(CLAUDE_MODEL_LADDER[1]),
    }, text="Day 1: Angels Landing")

    result = await relay_with(claude=claude).relay(chat())

    assert claude.messages.models_called == CLAUDE_MODEL_LADDER[:3]
    assert result.to_dict() == {
        "content": "Day 1: Angels Landing",
        "provider": "claude",
        "model": CLAUDE_MODEL_LADDER[2],
        "usage": {"inputTokens": 12, "outputTokens": 30},
    }


@pytest.mark.asyncio
async def test_claude_auth_error_aborts_ladder():
    claude = FakeClaudeClient(outcomes={
        CLAUDE_MODEL_LADDER[0]: FakeUpstreamError("invalid x-api-key: authentication_error", status_code=401),
    })
    with pytest.raises(UpstreamAuthError) as exc_info:
        await relay_with(claude=claude).relay(chat())

    assert exc_info.value.status_code == 401
    assert exc_info.value.error_code == ErrorCode.AUTH_FAILURE
    assert exc_info.value.suggestion
    assert claude.messages.models_called == CLAUDE_MODEL_LADDER[:1]


@pytest.mark.asyncio
async def test_claude_rate_limit_aborts_with_suggestion():
    claude = FakeClaudeClient(outcomes={
        CLAUDE_MODEL_LADDER[0]: FakeUpstreamError("rate limit exceeded for model", status_code=429),
    })
    with pytest.raises(UpstreamRateLimitError) as exc_info:
        await relay_with(claude=claude).relay(chat())

    assert exc_info.value.status_code == 429
    assert exc_info.value.suggestion == "Please wait a moment before trying again"
    assert len(claude.messages.calls) == 1


@pytest.mark.asyncio
async def test_claude_other_error_is_surfaced_without_fallback():
    claude = FakeClaudeClient(outcomes={
        CLAUDE_MODEL_LADDER[0]: FakeUpstreamError("Overloaded", status_code=529),
    })
    with pytest.raises(UpstreamServiceError) as exc_info:
        await relay_with(claude=claude).relay(chat())

    assert exc_info.value.status_code == 500
    assert exc_info.value.details == "Overloaded"
    assert len(claude.messages.calls) == 1


@pytest.mark.asyncio
async def test_claude_all_models_failing():
    claude = FakeClaudeClient(outcomes={model: not_found(model) for model in CLAUDE_MODEL_LADDER})
    with pytest.raises(AllModelsUnavailableError) as exc_info:
        await relay_with(claude=claude).relay(chat())

    error = exc_info.value
    assert error.status_code == 400
    assert error.extra["attemptedModels"] == CLAUDE_MODEL_LADDER
    assert CLAUDE_MODEL_LADDER[-1] in error.details
    assert claude.messages.models_called == CLAUDE_MODEL_LADDER


@pytest.mark.asyncio
async def test_system_messages_are_merged_into_system_prompt():
    claude = FakeClaudeClient()
    request = RelayRequest(
        messages=[
            {"role": "system", "content": "Answer in bullet points."},
            {"role": "user", "content": "Hikes near Moab?"},
            {"role": "assistant", "content": "Delicate Arch."},
            {"role": "user", "content": "Any closures?"},
        ],
        system_prompt="You are a ranger.",
        facts=FactsBundle(weather_facts="Sunny", nps_facts="Active Alerts:\nNone reported"),
        park_name="Arches",
    )
    await relay_with(claude=claude).relay(request)

    call = claude.messages.calls[0]
    assert [m["role"] for m in call["messages"]] == ["user", "assistant", "user"]
    assert call["system"] == (
        "You are a ranger.\n\nAnswer in bullet points."
        "\n\nNPS FACTS for Arches:\nActive Alerts:\nNone reported"
        "\n\nUse these in answers. Do not invent closures or permits."
        "\n\nLIVE WEATHER FACTS for Arches:\nSunny\nDo not guess weather beyond these facts."
    )
    assert call["max_tokens"] == 2000
    assert call["temperature"] == 0.4


def test_default_system_prompt_and_generic_park_label():
    prompt = build_system_prompt(None, [], FactsBundle(weather_facts="Rain"))
    assert prompt.startswith("You are a helpful travel assistant.")
    assert "LIVE WEATHER FACTS for this park:\nRain" in prompt
    assert "NPS FACTS" not in prompt


@pytest.mark.asyncio
async def test_openai_single_call_with_system_turn():
    openai = FakeOpenAIClient(text="Try the Narrows")
    result = await relay_with(openai=openai).relay(chat(provider="openai", top_p=0.5))

    call = openai.chat.completions.calls[0]
    assert call["model"] == "gpt-4"
    assert call["top_p"] == 0.5
    assert call["messages"][0] == {"role": "system", "content": "You are a helpful travel assistant."}
    assert result.to_dict() == {
        "content": "Try the Narrows",
        "provider": "openai",
        "model": "gpt-4",
        "usage": {"inputTokens": 20, "outputTokens": 10},
    }


@pytest.mark.asyncio
async def test_openai_failure_is_terminal():
    openai = FakeOpenAIClient(error=FakeUpstreamError("The model `gpt-5` does not exist", status_code=404))
    with pytest.raises(UpstreamServiceError):
        await relay_with(openai=openai).relay(chat(provider="openai", model="gpt-5"))
    assert len(openai.chat.completions.calls) == 1


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected():
    with pytest.raises(InvalidProviderError) as exc_info:
        await relay_with(claude=FakeClaudeClient()).relay(chat(provider="gemini"))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_unconfigured_provider_makes_no_call():
    claude = FakeClaudeClient()
    with pytest.raises(ProviderUnavailableError) as exc_info:
        await relay_with(claude=claude).relay(chat(provider="openai"))
    assert exc_info.value.status_code == 500
    assert claude.messages.calls == []


@pytest.mark.asyncio
async def test_model_check_reports_each_model():
    claude = FakeClaudeClient(outcomes={"claude-3-opus-20240229": not_found("claude-3-opus-20240229")})
    report = await relay_with(claude=claude).probe_claude_models()

    assert [r["model"] for r in report["results"]] == CLAUDE_PROBE_MODELS
    assert report["summary"]["total"] == len(CLAUDE_PROBE_MODELS)
    assert report["summary"]["unavailable"] == 1
    assert report["summary"]["unavailableModels"][0]["model"] == "claude-3-opus-20240229"
    assert all(call["max_tokens"] == 10 for call in claude.messages.calls)


@pytest.mark.asyncio
async def test_requested_claude_model_does_not_change_the_ladder():
    claude = FakeClaudeClient(outcomes={CLAUDE_MODEL_LADDER[0]: not_found(CLAUDE_MODEL_LADDER[0])})
    result = await relay_with(claude=claude).relay(chat(model="claude-opus-4-1"))

    assert claude.messages.models_called == CLAUDE_MODEL_LADDER[:2]
    assert result.model == CLAUDE_MODEL_LADDER[1]


@pytest.mark.asyncio
async def test_requested_claude_model_is_not_attempted_when_all_fail():
    claude = FakeClaudeClient(outcomes={model: not_found(model) for model in CLAUDE_MODEL_LADDER + ["x-model"]})
    with pytest.raises(AllModelsUnavailableError) as exc_info:
        await relay_with(claude=claude).relay(chat(model="x-model"))

    assert exc_info.value.extra["attemptedModels"] == CLAUDE_MODEL_LADDER
    assert "x-model" not in claude.messages.models_called
