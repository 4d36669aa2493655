"""Tests for the provider and model catalog."""

import pytest

from chat_gateway.models.catalog import (
    DEFAULT_MAX_TOKENS,
    FALLBACK_CHAINS,
    MODELS,
    RESTRICTED_MAX_TOKENS,
    Provider,
    clamp_max_tokens,
    fallback_candidates,
    is_restricted_model,
    max_tokens_ceiling,
)


class TestProviderParse:
    """Tests for Provider.parse()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("completions", Provider.COMPLETIONS),
            ("messages", Provider.MESSAGES),
            ("openai", Provider.COMPLETIONS),
            ("claude", Provider.MESSAGES),
            ("Anthropic", Provider.MESSAGES),
            ("  OPENAI ", Provider.COMPLETIONS),
        ],
    )
    def test_accepts_names_and_aliases(self, value: str, expected: Provider) -> None:
        assert Provider.parse(value) is expected

    def test_passes_enum_through(self) -> None:
        assert Provider.parse(Provider.MESSAGES) is Provider.MESSAGES

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError):
            Provider.parse("perplexity")


class TestRestrictedModels:
    """Tests for the restricted-model pattern."""

    @pytest.mark.parametrize(
        "model", ["gpt-5", "gpt-5-2025-08-07", "gpt-5-mini-2025-08-07", "o1", "o3-mini", "o4-mini"]
    )
    def test_restricted(self, model: str) -> None:
        assert is_restricted_model(model)

    @pytest.mark.parametrize("model", ["gpt-4o", "gpt-4o-mini", "claude-sonnet-4-5", "gpt-50x"])
    def test_not_restricted(self, model: str) -> None:
        assert not is_restricted_model(model)


class TestMaxTokens:
    """Tests for ceilings and clamping."""

    def test_every_catalog_model_is_clamped_to_its_ceiling(self) -> None:
        """The effective maxTokens never exceeds the ceiling, whatever is requested."""
        for infos in MODELS.values():
            for info in infos:
                ceiling = max_tokens_ceiling(info.id)
                for requested in (1, 500, ceiling, ceiling + 1, 10**9):
                    assert clamp_max_tokens(info.id, requested) <= ceiling

    def test_known_ceilings(self) -> None:
        assert max_tokens_ceiling("gpt-4o") == 16384
        assert max_tokens_ceiling("claude-sonnet-4-5") == 64000
        assert max_tokens_ceiling("claude-3-haiku-20240307") == 4096

    def test_restricted_models_use_lower_ceiling(self) -> None:
        assert max_tokens_ceiling("gpt-5-2025-08-07") == RESTRICTED_MAX_TOKENS
        assert max_tokens_ceiling("o3-unlisted") == RESTRICTED_MAX_TOKENS

    def test_unknown_model_uses_default_ceiling(self) -> None:
        assert max_tokens_ceiling("some-new-model") == DEFAULT_MAX_TOKENS

    def test_small_requests_are_kept(self) -> None:
        assert clamp_max_tokens("gpt-4o", 256) == 256

    def test_clamp_never_returns_zero(self) -> None:
        assert clamp_max_tokens("gpt-4o", 0) == 1


class TestFallbackCandidates:
    """Tests for fallback chain lookup."""

    def test_chain_named_after_model(self) -> None:
        assert fallback_candidates("gpt-5") == ["gpt-5-2025-08-07", "gpt-5", "gpt-4o"]

    def test_chain_headed_by_model(self) -> None:
        assert fallback_candidates("gpt-5-2025-08-07") == FALLBACK_CHAINS["gpt-5"]

    def test_model_named_chain_preferred_over_membership(self) -> None:
        """gpt-4o also appears in the gpt-5 chain but has its own chain."""
        assert fallback_candidates("gpt-4o") == ["gpt-4o", "gpt-4o-mini"]

    def test_starts_at_model_position(self) -> None:
        assert fallback_candidates("claude-3-5-sonnet-latest") == [
            "claude-3-5-sonnet-latest",
            "claude-3-haiku-20240307",
        ]

    def test_model_in_no_chain_is_tried_alone(self) -> None:
        assert fallback_candidates("my-fine-tune") == ["my-fine-tune"]

    def test_custom_chains(self) -> None:
        chains = {"a": ["a", "b", "c"]}
        assert fallback_candidates("b", chains) == ["b", "c"]
