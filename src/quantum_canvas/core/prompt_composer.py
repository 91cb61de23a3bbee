"""Prompt composition for Quantum Canvas.

The final prompt sent to the image provider is built from three parts the
user picks in the browser: free text, an optional style preset, and an
optional aspect-ratio preset.

Composition Rules
-----------------
::

    [Free Text][Style Suffix][, aspect ratio W:H]

- The free text is stripped; an empty result is rejected before anything
  else happens.
- The style suffix comes from a fixed lookup keyed by the style preset id.
  Unknown or empty style ids contribute nothing.
- The aspect-ratio suffix is omitted for the default ratio (``1:1``).

Two helpers back the quick-action buttons in the client: :func:`enhance_prompt`
appends a random quality booster, :func:`surprise_prompt` picks an example
prompt.  Both take an optional ``random.Random`` so tests can pin the choice.

Usage
-----
::

    compose_prompt("a red fox in snow", style="watercolor", aspect_ratio="16:9")
    # 'a red fox in snow, watercolor painting, soft washes, artistic, aspect ratio 16:9'
"""

from __future__ import annotations

import random

from quantum_canvas.core.errors import PromptError

DEFAULT_ASPECT_RATIO = "1:1"

# ---------------------------------------------------------------------------
# Fixed style lookup.  Keys match the ``data-style`` attributes of the style
# cards rendered by the client.
# ---------------------------------------------------------------------------
STYLE_MODIFIERS: dict[str, str] = {
    "photorealistic": ", photorealistic, high detail, professional photography",
    "anime": ", anime style, manga, vibrant colors",
    "oil-painting": ", oil painting, classical art style, textured brushstrokes",
    "3d-render": ", 3D render, Blender, octane render, volumetric lighting",
    "watercolor": ", watercolor painting, soft washes, artistic",
    "cyberpunk": ", cyberpunk style, neon lights, futuristic, dark atmosphere",
    "fantasy": ", fantasy art, magical, mystical, epic",
    "minimalist": ", minimalist style, clean, simple, geometric",
}

ASPECT_RATIOS: tuple[str, ...] = ("1:1", "16:9", "9:16", "4:3", "3:4")

PROMPT_ENHANCEMENTS: tuple[str, ...] = (
    ", highly detailed",
    ", professional quality",
    ", award winning",
    ", trending on artstation",
    ", cinematic lighting",
)

SURPRISE_PROMPTS: tuple[str, ...] = (
    "A majestic dragon made of crystal soaring through aurora borealis",
    "Underwater city with bioluminescent coral architecture",
    "Steampunk airship floating above Victorian London",
    "Ancient library with floating books and magical glowing orbs",
    "Robot garden tending to mechanical flowers under twin moons",
    "Glass castle reflecting rainbow light in a misty forest",
    "Phoenix rising from digital flames in cyberspace",
    "Floating islands connected by rainbow bridges",
    "Time traveler's workshop filled with clockwork mechanisms",
    "Nebula shaped like a cosmic whale swimming through stars",
)


def compose_prompt(
    text: str | None,
    style: str | None = None,
    aspect_ratio: str | None = DEFAULT_ASPECT_RATIO,
) -> str:
    """Compose the final prompt from free text, style and aspect ratio.

    Args:
        text: The user's free-text description.
        style: Style preset id (see :data:`STYLE_MODIFIERS`).  ``None``, empty
            or unknown ids add no suffix.
        aspect_ratio: Aspect-ratio preset such as ``"16:9"``.  ``None`` or
            ``"1:1"`` adds no suffix.

    Returns:
        The composed prompt string.

    Raises:
        PromptError: If *text* is missing or only whitespace.
    """
    base = (text or "").strip()
    if not base:
        raise PromptError("Please enter a description for your image")

    prompt = base

    if style:
        prompt += STYLE_MODIFIERS.get(style, "")

    # The default square ratio is implied, so it is never spelled out.
    ratio = (aspect_ratio or "").strip()
    if ratio and ratio != DEFAULT_ASPECT_RATIO:
        prompt += f", aspect ratio {ratio}"

    return prompt


def enhance_prompt(text: str | None, rng: random.Random | None = None) -> str:
    """Append one randomly chosen quality enhancement to *text*.

    Raises:
        PromptError: If *text* is missing or only whitespace.
    """
    base = (text or "").strip()
    if not base:
        raise PromptError("Please enter a prompt first")
    chooser = rng or random
    return base + chooser.choice(PROMPT_ENHANCEMENTS)


def surprise_prompt(rng: random.Random | None = None) -> str:
    """Return one of the built-in example prompts."""
    chooser = rng or random
    return chooser.choice(SURPRISE_PROMPTS)
