"""
AI model constants in one place.
Provider identifiers, the Claude fallback ladder and the per-role token limits live here.
"""

from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass

from trailverse.core.config import settings

# Supported upstream providers
class ModelProvider(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"

SUPPORTED_PROVIDERS = [p.value for p in ModelProvider]

# Claude candidates, newest first. Tried one at a time.
CLAUDE_MODEL_LADDER: List[str] = [
    "claude-sonnet-4-5-20250929",
    "claude-3-5-sonnet-20241022",
    "claude-3-5-sonnet-20240620",
    "claude-3-opus-20240229",
]

# /test-models probes the ladder plus the lighter models
CLAUDE_PROBE_MODELS: List[str] = CLAUDE_MODEL_LADDER + [
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
]

OPENAI_DEFAULT_MODEL = settings.OPENAI_DEFAULT_MODEL

DEFAULT_SYSTEM_PROMPT = "You are a helpful travel assistant."

@dataclass(frozen=True)
class ProviderInfo:
    """Display metadata for /providers"""
    id: str
    name: str
    model: str
    description: str

    def to_dict(self, available: bool = True) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "description": self.description,
            "available": available,
        }

PROVIDER_CATALOG: Dict[str, ProviderInfo] = {
    ModelProvider.CLAUDE.value: ProviderInfo(
        id=ModelProvider.CLAUDE.value,
        name="Claude",
        model="Sonnet 4.5",
        description="Anthropic Claude - Best for detailed planning (with fallback to 3.5 Sonnet)",
    ),
    ModelProvider.OPENAI.value: ProviderInfo(
        id=ModelProvider.OPENAI.value,
        name="ChatGPT",
        model="GPT-4",
        description="OpenAI GPT-4 - Fast and versatile",
    ),
}

# Per-role daily token ceilings. None means unlimited (guard bypassed).
class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"

DAILY_TOKEN_LIMITS: Dict[str, Optional[int]] = {
    UserRole.USER.value: settings.USER_DAILY_TOKEN_LIMIT,
    UserRole.ADMIN.value: None,
}

RESET_TIME_MESSAGE = "Daily limits reset at midnight"

def get_daily_token_limit(role: Optional[str]) -> Optional[int]:
    """Role name to daily ceiling; unknown roles get the regular user limit."""
    if role in DAILY_TOKEN_LIMITS:
        return DAILY_TOKEN_LIMITS[role]
    return DAILY_TOKEN_LIMITS[UserRole.USER.value]
