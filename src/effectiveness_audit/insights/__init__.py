"""AI insights generation."""

from .client import AIClientConfig, AIInsightsClient, HealthReport, InsightsStream
from .fallback import generate_fallback_insights
from .prompts import PromptData, build_insights_prompt
from .providers import LLMProvider, LLMResponse, PromptContent, get_provider

__all__ = [
    "AIClientConfig",
    "AIInsightsClient",
    "HealthReport",
    "InsightsStream",
    "LLMProvider",
    "LLMResponse",
    "PromptContent",
    "PromptData",
    "build_insights_prompt",
    "generate_fallback_insights",
    "get_provider",
]
