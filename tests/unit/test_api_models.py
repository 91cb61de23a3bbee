"""Tests for quantum_canvas.api.models — Pydantic request models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from quantum_canvas.api.models import (
    ComposePromptRequest,
    GalleryEntryRequest,
    GenerateImageRequest,
)


class TestGenerateImageRequest:
    """Test GenerateImageRequest validation."""

    def test_prompt_is_optional_at_schema_level(self):
        assert GenerateImageRequest().prompt is None

    def test_prompt_value(self):
        assert GenerateImageRequest(prompt="a fox").prompt == "a fox"


class TestComposePromptRequest:
    """Test ComposePromptRequest defaults."""

    def test_defaults(self):
        req = ComposePromptRequest(text="castle")
        assert req.style is None
        assert req.aspect_ratio == "1:1"


class TestGalleryEntryRequest:
    """Test GalleryEntryRequest validation."""

    def test_valid(self):
        req = GalleryEntryRequest(url="/generated/a.png", prompt="p", type="manipulated")
        assert req.type == "manipulated"
        assert req.description is None

    def test_empty_url_rejected(self):
        with pytest.raises(ValidationError):
            GalleryEntryRequest(url="", prompt="p")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            GalleryEntryRequest(url="/a.png", prompt="p", type="uploaded")
