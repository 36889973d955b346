"""
BoldMove - Model Router.

Selects the model and sampling settings for each kind of generation call.

Complexity levels:
- low: Short, formulaic outputs (step lists, fallbacks) → gpt-4.1-mini
- medium: Conversational turns → gpt-4.1-mini
- high: Synthesis over the whole transcript → gpt-4.1
"""

from typing import Literal, TypedDict


class ModelConfig(TypedDict, total=False):
    """Configuration for model calls."""

    model: str
    temperature: float
    max_tokens: int


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "low": {
        "model": "gpt-4.1-mini",
        "temperature": 0.3,
        "max_tokens": 400,
    },
    "medium": {
        "model": "gpt-4.1-mini",
        "temperature": 0.7,
        "max_tokens": 600,
    },
    "high": {
        "model": "gpt-4.1",
        "temperature": 0.7,
        "max_tokens": 800,
    },
}

# Default config if complexity not recognized
DEFAULT_CONFIG: ModelConfig = {
    "model": "gpt-4.1-mini",
    "temperature": 0.7,
    "max_tokens": 600,
}


def get_model(complexity: Literal["low", "medium", "high"] | str) -> str:
    """
    Get the appropriate model for a given complexity level.

    Args:
        complexity: Task complexity level

    Returns:
        Model name string
    """
    config = MODEL_CONFIGS.get(complexity, DEFAULT_CONFIG)
    return config["model"]


def get_model_config(complexity: Literal["low", "medium", "high"] | str) -> ModelConfig:
    """Get a copy of the full model configuration for a complexity level."""
    return MODEL_CONFIGS.get(complexity, DEFAULT_CONFIG).copy()


# Node-specific temperature overrides
# Lower = more deterministic, higher = warmer
NODE_TEMPERATURE: dict[str, float] = {
    "greeting": 0.8,  # Opening should feel personal
    "question": 0.7,  # Follow-up questions build on the last answer
    "synthesis": 0.5,  # One sentence, should stay close to what was said
    "celebration": 0.8,
    "permission": 0.8,
    "decompose": 0.3,  # Numbered list format must hold
    "roadmap": 0.6,
}

# Node-specific output limits
NODE_MAX_TOKENS: dict[str, int] = {
    "greeting": 200,
    "question": 250,
    "synthesis": 120,
    "decompose": 400,
    "roadmap": 1200,
}


def get_node_config(
    node: str,
    complexity: Literal["low", "medium", "high"] | str,
) -> ModelConfig:
    """
    Get model configuration tuned for a specific generation node.

    Args:
        node: Node name ("greeting", "question", "synthesis", "decompose", ...)
        complexity: Task complexity level

    Returns:
        Model configuration with node overrides applied
    """
    config = get_model_config(complexity)

    if node in NODE_TEMPERATURE:
        config["temperature"] = NODE_TEMPERATURE[node]

    if node in NODE_MAX_TOKENS:
        config["max_tokens"] = NODE_MAX_TOKENS[node]

    return config
