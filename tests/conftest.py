"""Shared pytest fixtures for Quantum Canvas tests."""

from __future__ import annotations

import io
import os
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Generator
from unittest.mock import MagicMock

# Keep the import-time global config from creating directories in the
# working tree.
_SESSION_DIR = tempfile.mkdtemp(prefix="quantum-canvas-tests-")
os.environ.setdefault("QUANTUM_CANVAS_GENERATED_DIR", os.path.join(_SESSION_DIR, "generated"))
os.environ.setdefault("QUANTUM_CANVAS_DATA_DIR", os.path.join(_SESSION_DIR, "data"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from quantum_canvas.api.main import create_app  # noqa: E402
from quantum_canvas.core.ai_client import GeminiClient  # noqa: E402
from quantum_canvas.core.config import QuantumCanvasConfig  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


def _settings(temp_dir: Path, **overrides) -> QuantumCanvasConfig:
    values = {
        "gemini_api_key": "test-key",
        "hf_token": None,
        "image_provider": "gemini",
        "generation_mode": "image",
        "generated_dir": temp_dir / "generated",
        "data_dir": temp_dir / "data",
    }
    values.update(overrides)
    return QuantumCanvasConfig(_env_file=None, **values)


@pytest.fixture
def test_config(temp_dir: Path) -> QuantumCanvasConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        QuantumCanvasConfig instance with a dummy Gemini key
    """
    return _settings(temp_dir)


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Factory producing small encoded test images.

    Returns:
        ``make_png(width=64, height=48, color=(200, 120, 40), mode="RGB",
        fmt="PNG") -> bytes``
    """

    def _make(
        width: int = 64,
        height: int = 48,
        color: tuple = (200, 120, 40),
        mode: str = "RGB",
        fmt: str = "PNG",
    ) -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, (width, height), color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def replies() -> SimpleNamespace:
    """Builders for objects shaped like ``generate_content`` replies."""

    def image_part(data: bytes = b"\x89PNG fake", mime_type: str = "image/png"):
        return SimpleNamespace(
            inline_data=SimpleNamespace(data=data, mime_type=mime_type),
            text=None,
        )

    def text_part(text: str):
        return SimpleNamespace(inline_data=None, text=text)

    def reply(*parts):
        content = SimpleNamespace(parts=list(parts))
        return SimpleNamespace(candidates=[SimpleNamespace(content=content)])

    return SimpleNamespace(image_part=image_part, text_part=text_part, reply=reply)


@pytest.fixture
def sdk() -> MagicMock:
    """Stand-in for ``google.genai.Client``; set ``models.generate_content``."""
    return MagicMock()


@pytest.fixture
def gemini_client(test_config: QuantumCanvasConfig, sdk: MagicMock) -> GeminiClient:
    """A real :class:`GeminiClient` wired to the mocked SDK client."""
    return GeminiClient(
        "test-key",
        text_model=test_config.text_model,
        image_model=test_config.image_model,
        client=sdk,
    )


@pytest.fixture
def make_test_client(temp_dir: Path, sdk: MagicMock) -> Callable[..., TestClient]:
    """Factory building a TestClient around a freshly configured app.

    Keyword arguments override configuration fields; ``hf_client`` is passed
    through to :func:`create_app`.  When a Gemini key is configured the
    Gemini adapter talks to the mocked ``sdk``.
    """

    def _make(hf_client=None, **overrides) -> TestClient:
        settings = _settings(temp_dir, **overrides)
        gemini = None
        if settings.gemini_api_key:
            gemini = GeminiClient(
                settings.gemini_api_key,
                text_model=settings.text_model,
                image_model=settings.image_model,
                client=sdk,
            )
        return TestClient(create_app(settings, gemini_client=gemini, hf_client=hf_client))

    return _make


@pytest.fixture
def test_client(make_test_client) -> TestClient:
    """TestClient for an app with a dummy Gemini key and mocked SDK."""
    return make_test_client()
