"""Provider and model catalog.

Holds the documented max-token ceilings, the restricted-model pattern and the
ordered fallback chains used by ModelFallbackResolver.
"""

import re
from dataclasses import dataclass
from enum import Enum


class Provider(str, Enum):
    """The two supported wire protocols."""

    COMPLETIONS = "completions"
    MESSAGES = "messages"

    @classmethod
    def parse(cls, value: "str | Provider") -> "Provider":
        """Parse a provider name, accepting vendor aliases.

        Raises:
            ValueError: If the name is not a known provider
        """
        if isinstance(value, Provider):
            return value
        key = value.strip().lower()
        if key in PROVIDER_ALIASES:
            return PROVIDER_ALIASES[key]
        return cls(key)


PROVIDER_ALIASES = {
    "openai": Provider.COMPLETIONS,
    "claude": Provider.MESSAGES,
    "anthropic": Provider.MESSAGES,
}

PROVIDER_LABELS = {
    Provider.COMPLETIONS: "OpenAI",
    Provider.MESSAGES: "Anthropic Claude",
}

DEFAULT_MAX_TOKENS = 8000
RESTRICTED_MAX_TOKENS = 4000

# Families that reject temperature and tools and use max_completion_tokens
RESTRICTED_MODEL_PATTERN = re.compile(r"^(gpt-5|o1|o3|o4)(-|$)")


@dataclass(frozen=True)
class ModelInfo:
    """A catalog entry."""

    id: str
    label: str
    max_tokens: int


MODELS: dict[Provider, list[ModelInfo]] = {
    Provider.COMPLETIONS: [
        ModelInfo("gpt-5-2025-08-07", "GPT-5", 16384),
        ModelInfo("gpt-5-mini-2025-08-07", "GPT-5 Mini", 16384),
        ModelInfo("gpt-4o", "GPT-4o", 16384),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", 16384),
    ],
    Provider.MESSAGES: [
        ModelInfo("claude-sonnet-4-5", "Claude 4.5 Sonnet", 64000),
        ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 8192),
        ModelInfo("claude-3-haiku-20240307", "Claude 3 Haiku", 4096),
    ],
}

DEFAULT_MODELS = {
    Provider.COMPLETIONS: "gpt-4o-mini",
    Provider.MESSAGES: "claude-sonnet-4-5",
}

FALLBACK_CHAINS: dict[str, list[str]] = {
    "gpt-5": ["gpt-5-2025-08-07", "gpt-5", "gpt-4o"],
    "gpt-5-mini": ["gpt-5-mini-2025-08-07", "gpt-5-mini", "gpt-4o-mini"],
    "gpt-4o": ["gpt-4o", "gpt-4o-mini"],
    "claude-sonnet-4-5": [
        "claude-sonnet-4-5",
        "claude-sonnet-4-5-20250929",
        "claude-3-5-sonnet-20241022",
    ],
    "claude-3-5-sonnet": [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-sonnet-latest",
        "claude-3-haiku-20240307",
    ],
}

_CEILINGS = {info.id: info.max_tokens for models in MODELS.values() for info in models}


def is_restricted_model(model: str) -> bool:
    """Check whether a model rejects temperature and tool attachment."""
    return RESTRICTED_MODEL_PATTERN.match(model) is not None


def max_tokens_ceiling(model: str) -> int:
    """Documented max-token ceiling for a model.

    Restricted models never exceed RESTRICTED_MAX_TOKENS. Unknown models
    use DEFAULT_MAX_TOKENS.
    """
    ceiling = _CEILINGS.get(model, DEFAULT_MAX_TOKENS)
    if is_restricted_model(model):
        ceiling = min(ceiling, RESTRICTED_MAX_TOKENS)
    return ceiling


def clamp_max_tokens(model: str, requested: int) -> int:
    """Clamp a caller-supplied max_tokens to the model's ceiling."""
    return max(1, min(requested, max_tokens_ceiling(model)))


def fallback_candidates(
    model: str,
    chains: dict[str, list[str]] | None = None,
) -> list[str]:
    """Ordered model ids to try for a requested model.

    A model that names a chain (a family alias such as "gpt-5") gets the
    whole chain. Otherwise the chain the model heads is preferred, then any
    chain containing it, and candidates start at the model's position. A
    model in no chain is tried alone.
    """
    chains = FALLBACK_CHAINS if chains is None else chains

    if model in chains:
        chain = chains[model]
        return list(chain) if model in chain else [model, *chain]
    for chain in chains.values():
        if chain and chain[0] == model:
            return list(chain)
    for chain in chains.values():
        if model in chain:
            return chain[chain.index(model) :]
    return [model]
