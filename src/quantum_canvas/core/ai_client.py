"""Generative provider adapters for Quantum Canvas.

Two providers are supported:

- :class:`GeminiClient` wraps the ``google-genai`` SDK.  It generates images
  (inline image parts), written descriptions, and transform suggestions for
  the ``ai-enhance`` operation.
- :class:`HuggingFaceClient` wraps ``huggingface_hub.InferenceClient`` for the
  alternate Stable Diffusion text-to-image path.

Both expose ``generate_image(prompt) -> ProviderResponse`` so the generate
handler can switch between them on the ``image_provider`` setting.

Response Shapes
---------------
A Gemini reply is a list of candidates whose content holds *parts*.  A part
either carries ``inline_data`` (binary bytes plus a media type) or ``text``.
:func:`interpret_response` looks for the first inline image part before
falling back to the concatenated text, so callers get a single
:class:`ProviderResponse` regardless of what the model chose to send back.

Error Classification
--------------------
SDK exceptions never leave this module raw.  :func:`classify_provider_error`
maps them onto the :mod:`quantum_canvas.core.errors` taxonomy:

- HTTP 429, ``RESOURCE_EXHAUSTED``, "quota", "Too Many Requests"
  → :class:`QuotaExceededError` (try again later)
- HTTP 401/403, ``PERMISSION_DENIED``, invalid key → :class:`AccessDeniedError`
- HTTP 5xx, ``UNAVAILABLE``, timeouts, transport errors
  → :class:`ProviderUnavailableError`
- anything else → :class:`ProviderError`

Nothing is retried within a request.
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from google import genai
from google.genai import types

from quantum_canvas.core.config import QuantumCanvasConfig
from quantum_canvas.core.errors import (
    AccessDeniedError,
    ProviderError,
    ProviderUnavailableError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

IMAGE_INSTRUCTION = (
    "Create a high-quality, detailed image: {prompt}. "
    "Make it visually appealing, colorful, and professional-looking."
)

DESCRIPTION_INSTRUCTION = """Create an extremely detailed, vivid description of an image based on this prompt: "{prompt}".
Include specific details about:
- Visual composition and layout
- Colors, lighting, and atmosphere
- Textures and materials
- Style and artistic approach
- Mood and emotional tone
- Specific objects and their placement
Make it as if you're describing a real masterpiece painting."""

SUGGESTION_INSTRUCTION = """You are tuning a photo editor. The user wants: "{instruction}".
Reply with a single JSON object and nothing else. Use only these keys, omitting any that should stay unchanged:
- "brightness": multiplier 0.0-3.0 (1.0 = unchanged)
- "contrast": multiplier 0.0-3.0 (1.0 = unchanged)
- "saturation": multiplier 0.0-3.0 (1.0 = unchanged)
- "hue": rotation in degrees, -180 to 180
- "blur": gaussian radius 0.3-100
- "sharpen": amount 0.1-10
- "rotate": degrees clockwise, -360 to 360
- "flip": true to mirror vertically
- "flop": true to mirror horizontally
- "grayscale": true for black and white
- "sepia": true for a sepia tone"""

_QUOTA_MARKERS = ("quota", "resource_exhausted", "too many requests", "rate limit")
_ACCESS_MARKERS = ("permission_denied", "unauthenticated", "api key not valid", "forbidden")
_UNAVAILABLE_MARKERS = ("unavailable", "deadline", "timed out", "timeout", "connection")

_QUOTA_GUIDANCE = {
    "gemini": (
        "Gemini free tier quota exceeded. Please wait or enable billing.",
        "24 hours for quota reset, or enable billing at https://aistudio.google.com/",
    ),
    "huggingface": (
        "Hugging Face Inference API rate limit reached. Please wait before retrying.",
        "a few minutes, or upgrade the Hugging Face plan",
    ),
}


@dataclass
class ProviderResponse:
    """Normalised provider reply: inline image bytes, text, or both."""

    text: str | None = None
    image_data: bytes | None = None
    mime_type: str | None = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)


# ---------------------------------------------------------------------------
# Response inspection and error mapping.
# ---------------------------------------------------------------------------


def interpret_response(response: Any) -> ProviderResponse:
    """Normalise a ``generate_content`` reply into a :class:`ProviderResponse`.

    The first part carrying ``inline_data`` wins; text parts are joined with
    newlines and returned alongside (or instead of) the image.

    Raises:
        ProviderError: If the reply has no candidates or no usable parts.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise ProviderError("No candidates in response")

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []

    image_data: bytes | None = None
    mime_type: str | None = None
    texts: list[str] = []

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if image_data is None and inline is not None and getattr(inline, "data", None):
            data = inline.data
            # REST-shaped replies carry base64 text rather than raw bytes.
            image_data = base64.b64decode(data) if isinstance(data, str) else bytes(data)
            mime_type = getattr(inline, "mime_type", None) or "image/png"
            continue
        text = getattr(part, "text", None)
        if text:
            texts.append(text)

    if image_data is None and not texts:
        raise ProviderError("No valid content in response")

    return ProviderResponse(
        text="\n".join(texts) if texts else None,
        image_data=image_data,
        mime_type=mime_type,
    )


def _status_code(exc: BaseException) -> int | None:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_provider_error(exc: BaseException, provider: str = "gemini") -> ProviderError:
    """Map an SDK or transport exception onto the provider error taxonomy.

    Args:
        exc: The exception raised by the SDK call.
        provider: ``"gemini"`` or ``"huggingface"``; selects retry guidance.

    Returns:
        A :class:`ProviderError` subclass carrying the provider's message as
        ``details``.
    """
    if isinstance(exc, ProviderError):
        return exc

    code = _status_code(exc)
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    haystack = f"{getattr(exc, 'status', '') or ''} {message}".lower()

    if code == 429 or any(marker in haystack for marker in _QUOTA_MARKERS):
        guidance, retry_after = _QUOTA_GUIDANCE.get(provider, _QUOTA_GUIDANCE["gemini"])
        return QuotaExceededError(
            details=f"{guidance} Provider message: {message}",
            retry_after=retry_after,
        )

    if code in (401, 403) or any(marker in haystack for marker in _ACCESS_MARKERS):
        return AccessDeniedError(
            "Access denied by the AI provider",
            details=f"{message}. Check that the API key is valid and has access to the model.",
        )

    if (
        (code is not None and code >= 500)
        or isinstance(exc, (TimeoutError, ConnectionError, httpx.TransportError))
        or any(marker in haystack for marker in _UNAVAILABLE_MARKERS)
    ):
        return ProviderUnavailableError(
            "AI provider is temporarily unavailable. Please try again.",
            details=message,
        )

    return ProviderError("AI provider request failed", details=message)


# ---------------------------------------------------------------------------
# Gemini.
# ---------------------------------------------------------------------------


class GeminiClient:
    """Adapter around ``google.genai.Client``.

    The SDK client is created lazily on first use so that constructing the
    adapter (and the FastAPI app) never touches the network.

    Attributes:
        api_key: Gemini API key.
        text_model: Model used for descriptions and suggestions.
        image_model: Model used for image generation.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        *,
        text_model: str,
        image_model: str,
        timeout: float = 60.0,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.text_model = text_model
        self.image_model = image_model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: QuantumCanvasConfig) -> GeminiClient | None:
        """Build a client from configuration, or ``None`` without an API key."""
        if not config.gemini_api_key:
            return None
        return cls(
            config.gemini_api_key,
            text_model=config.text_model,
            image_model=config.image_model,
            timeout=config.provider_timeout,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def _generate(
        self,
        model: str,
        parts: list[types.Part],
        config: types.GenerateContentConfig | None = None,
    ) -> ProviderResponse:
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=[types.Content(role="user", parts=parts)],
                config=config,
            )
        except Exception as e:
            raise classify_provider_error(e, "gemini") from e
        return interpret_response(response)

    def generate_image(self, prompt: str) -> ProviderResponse:
        """Ask the image model for a picture of *prompt*."""
        logger.info(f"Requesting image from {self.image_model}")
        return self._generate(
            self.image_model,
            [types.Part.from_text(text=IMAGE_INSTRUCTION.format(prompt=prompt))],
            types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )

    def describe_prompt(self, prompt: str) -> str:
        """Ask the text model for a detailed written concept of *prompt*.

        Raises:
            ProviderError: If the model returns no text.
        """
        logger.info(f"Requesting description from {self.text_model}")
        result = self._generate(
            self.text_model,
            [types.Part.from_text(text=DESCRIPTION_INSTRUCTION.format(prompt=prompt))],
        )
        if not result.text:
            raise ProviderError("Model returned an empty description")
        return result.text

    def suggest_transform(
        self,
        instruction: str,
        image_data: bytes | None = None,
        mime_type: str | None = None,
    ) -> str:
        """Ask the text model to propose transform values for *instruction*.

        The reply is free-form text that should contain a JSON object; parsing
        is left to :func:`quantum_canvas.core.transforms.parse_suggestion`.
        """
        parts = [types.Part.from_text(text=SUGGESTION_INSTRUCTION.format(instruction=instruction))]
        if image_data:
            parts.append(types.Part.from_bytes(data=image_data, mime_type=mime_type or "image/png"))
        logger.info(f"Requesting transform suggestion from {self.text_model}")
        return self._generate(self.text_model, parts).text or ""


# ---------------------------------------------------------------------------
# Hugging Face.
# ---------------------------------------------------------------------------


class HuggingFaceClient:
    """Adapter around ``huggingface_hub.InferenceClient`` text-to-image."""

    def __init__(self, token: str, *, model: str, timeout: float = 60.0, client: Any = None):
        self.token = token
        self.model = model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: QuantumCanvasConfig) -> HuggingFaceClient | None:
        """Build a client from configuration, or ``None`` without a token."""
        if not config.hf_token:
            return None
        return cls(config.hf_token, model=config.hf_model, timeout=config.provider_timeout)

    @property
    def client(self) -> Any:
        if self._client is None:
            from huggingface_hub import InferenceClient

            self._client = InferenceClient(token=self.token, timeout=self.timeout)
        return self._client

    def generate_image(self, prompt: str) -> ProviderResponse:
        """Run Stable Diffusion text-to-image and return PNG bytes."""
        logger.info(f"Requesting image from Hugging Face model {self.model}")
        try:
            image = self.client.text_to_image(prompt, model=self.model)
        except Exception as e:
            raise classify_provider_error(e, "huggingface") from e

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return ProviderResponse(image_data=buffer.getvalue(), mime_type="image/png")
