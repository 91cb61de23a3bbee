"""Tests for quantum_canvas.core.prompt_composer — prompt composition.

Tests cover:
- Style suffix lookup and aspect-ratio suffix rules.
- Rejection of empty prompts.
- Enhancement and surprise helpers with a pinned random source.
"""

from __future__ import annotations

import random

import pytest

from quantum_canvas.core.errors import PromptError
from quantum_canvas.core.prompt_composer import (
    PROMPT_ENHANCEMENTS,
    STYLE_MODIFIERS,
    SURPRISE_PROMPTS,
    compose_prompt,
    enhance_prompt,
    surprise_prompt,
)


class TestComposePrompt:
    """Test compose_prompt()."""

    def test_plain_text_is_stripped(self):
        assert compose_prompt("  a red fox  ") == "a red fox"

    def test_style_and_ratio(self):
        """Style suffix comes before the aspect-ratio suffix."""
        assert compose_prompt("a red fox in snow", "watercolor", "16:9") == (
            "a red fox in snow, watercolor painting, soft washes, artistic, aspect ratio 16:9"
        )

    def test_square_ratio_is_omitted(self):
        assert compose_prompt("castle", "anime", "1:1") == "castle" + STYLE_MODIFIERS["anime"]

    def test_unknown_style_adds_nothing(self):
        assert compose_prompt("castle", "vaporwave") == "castle"

    def test_none_ratio_adds_nothing(self):
        assert compose_prompt("castle", None, None) == "castle"

    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_empty_text_rejected(self, text):
        with pytest.raises(PromptError, match="Please enter a description"):
            compose_prompt(text, "anime", "16:9")

    def test_every_style_id_has_leading_comma(self):
        for suffix in STYLE_MODIFIERS.values():
            assert suffix.startswith(", ")


class TestEnhanceAndSurprise:
    """Test the quick-action helpers."""

    def test_enhance_appends_one_enhancement(self):
        result = enhance_prompt("a lighthouse", rng=random.Random(3))
        suffix = result[len("a lighthouse") :]
        assert result.startswith("a lighthouse")
        assert suffix in PROMPT_ENHANCEMENTS

    def test_enhance_rejects_empty(self):
        with pytest.raises(PromptError, match="Please enter a prompt first"):
            enhance_prompt("  ")

    def test_surprise_is_from_the_list(self):
        assert surprise_prompt(random.Random(0)) in SURPRISE_PROMPTS

    def test_surprise_is_deterministic_with_seed(self):
        assert surprise_prompt(random.Random(7)) == surprise_prompt(random.Random(7))
