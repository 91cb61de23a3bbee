"""Tests for the real frontend template shipped with the package.

These checks read the repository's actual ``index.html`` and ``app.js`` so
that frontend-only regressions in element ids and script wiring are caught
without a browser.
"""

from __future__ import annotations

from pathlib import Path

from quantum_canvas.core.prompt_composer import ASPECT_RATIOS, STYLE_MODIFIERS
from quantum_canvas.core.transforms import OPERATIONS

_PACKAGE_DIR = Path(__file__).resolve().parents[2] / "src" / "quantum_canvas"


def _read(*parts: str) -> str:
    return _PACKAGE_DIR.joinpath(*parts).read_text(encoding="utf-8")


def test_index_template_loads_module_script() -> None:
    html = _read("templates", "index.html")
    assert 'type="module" src="/static/js/app.js"' in html
    assert 'href="/static/css/style.css"' in html


def test_index_template_exposes_client_controls() -> None:
    html = _read("templates", "index.html")
    for element_id in (
        "prompt-input",
        "send-btn",
        "enhance-btn",
        "surprise-btn",
        "image-input",
        "operation-select",
        "error-panel",
        "gallery-grid",
        "clear-gallery",
    ):
        assert f'id="{element_id}"' in html


def test_style_and_aspect_cards_match_server_presets() -> None:
    html = _read("templates", "index.html")
    for style in STYLE_MODIFIERS:
        assert f'data-style="{style}"' in html
    for ratio in ASPECT_RATIOS:
        assert f'data-aspect="{ratio}"' in html


def test_operation_select_lists_every_operation() -> None:
    html = _read("templates", "index.html")
    for operation in OPERATIONS:
        assert f'<option value="{operation}">' in html


def test_client_uses_server_side_gallery() -> None:
    js = _read("static", "js", "app.js")
    assert '"/api/gallery"' in js
    assert "localStorage" not in js
