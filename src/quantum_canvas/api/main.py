"""Quantum Canvas — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI application factory, all REST API routes, the error envelope
handlers, and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The application follows a stateless REST pattern:

- **Configuration** comes from :mod:`quantum_canvas.core.config`
  (environment variables and ``.env``).
- **Image generation** is delegated to a provider adapter
  (:class:`~quantum_canvas.core.ai_client.GeminiClient` or
  :class:`~quantum_canvas.core.ai_client.HuggingFaceClient`) chosen by the
  ``image_provider`` setting.
- **Image manipulation** resolves transform parameters
  (:mod:`quantum_canvas.core.transforms`) and runs them through the Pillow
  pipeline (:mod:`quantum_canvas.core.image_pipeline`).
- **Artifacts** are written as timestamped files under ``generated/`` and
  served at ``/generated``.
- **Gallery history** is a bounded list persisted in ``gallery.json``.  Each
  request loads its own :class:`~quantum_canvas.core.gallery.GalleryHistory`.
- **Errors** are raised as :class:`~quantum_canvas.core.errors.CanvasError`
  subclasses and rendered as ``{"success": false, "error", "details"}`` by
  the exception handlers registered in :func:`create_app`.

Endpoints
---------
========  ===========================  ======================================
Method    Path                         Purpose
========  ===========================  ======================================
GET       ``/``                        Serve the main HTML page
GET       ``/health``                  Liveness and credential status
GET       ``/api/config``              Styles, ratios, operations, formats
POST      ``/api/generate-image``      Generate an image from a prompt
POST      ``/api/manipulate-image``    Transform an uploaded image
POST      ``/api/prompt/compose``      Compose prompt + style + aspect ratio
POST      ``/api/prompt/enhance``      Append a quality enhancement
GET       ``/api/prompt/surprise``     Pick an example prompt
GET       ``/api/gallery``             Gallery history, newest first
POST      ``/api/gallery``             Record an artifact in the gallery
DELETE    ``/api/gallery``             Clear the gallery history
========  ===========================  ======================================

Usage
-----
CLI (installed entry point)::

    quantum-canvas

Direct invocation::

    python -m quantum_canvas.api.main
"""

from __future__ import annotations

import functools
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from quantum_canvas import __version__
from quantum_canvas.api.models import (
    ComposePromptRequest,
    GalleryEntryRequest,
    GenerateImageRequest,
)
from quantum_canvas.core.ai_client import GeminiClient, HuggingFaceClient
from quantum_canvas.core.artifacts import URL_PREFIX, ArtifactStore, placeholder_svg
from quantum_canvas.core.config import QuantumCanvasConfig, config
from quantum_canvas.core.errors import (
    CanvasError,
    InvalidInputError,
    InvalidOperationError,
    MissingCredentialsError,
    PromptError,
    ProviderUnavailableError,
    UnexpectedResponseError,
)
from quantum_canvas.core.gallery import GalleryEntry, GalleryHistory, JsonFileStorage
from quantum_canvas.core.image_pipeline import OUTPUT_FORMATS, process_image
from quantum_canvas.core.prompt_composer import (
    ASPECT_RATIOS,
    STYLE_MODIFIERS,
    compose_prompt,
    enhance_prompt,
    surprise_prompt,
)
from quantum_canvas.core.transforms import (
    DEFAULT_OPERATION,
    OPERATION_FIELDS,
    OPERATIONS,
    ResolutionKind,
    resolve_parameters,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_RESOLUTION_NOTES = {
    ResolutionKind.DIRECT: "Processed with the supplied parameters.",
    ResolutionKind.NO_OP: "No valid parameters were supplied; the image was only re-encoded.",
    ResolutionKind.PARSED: "Processed with AI-suggested parameters.",
    ResolutionKind.FALLBACK_APPLIED: (
        "The AI suggestion could not be used; adjustments were derived from "
        "keywords in the prompt."
    ),
    ResolutionKind.DEFAULT_PRESET: "No guidance prompt given; the default enhancement was applied.",
}


# ---------------------------------------------------------------------------
# Request helpers.
# ---------------------------------------------------------------------------


def _settings(request: Request) -> QuantumCanvasConfig:
    return request.app.state.settings


def _gallery(request: Request) -> GalleryHistory:
    settings = _settings(request)
    return GalleryHistory(request.app.state.gallery_storage, limit=settings.gallery_limit)


def _parse_quality(value: Any, default: int) -> int:
    """Parse the ``quality`` form field, clamping to 1–100."""
    try:
        quality = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default
    return max(1, min(100, quality))


def _form_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _record(request: Request, entry: GalleryEntry) -> None:
    try:
        _gallery(request).add(entry)
    except OSError as e:
        # The result was produced; failing to persist history must not lose it.
        logger.error(f"Failed to update gallery history: {e}")


# ---------------------------------------------------------------------------
# Pages and metadata.
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """Serve the main application HTML page (404 if ``index.html`` is missing)."""
    index_path = _settings(request).templates_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@router.get("/health")
async def health(request: Request) -> dict:
    """Report liveness and whether provider credentials are configured."""
    settings = _settings(request)
    return {
        "status": "OK",
        "apiKeySet": settings.api_key_set,
        "hfTokenSet": bool(settings.hf_token),
        "version": __version__,
    }


@router.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return the presets the browser client renders."""
    settings = _settings(request)
    return {
        "version": __version__,
        "styles": list(STYLE_MODIFIERS),
        "aspect_ratios": list(ASPECT_RATIOS),
        "operations": {name: list(OPERATION_FIELDS[name]) for name in OPERATIONS},
        "formats": list(OUTPUT_FORMATS),
        "default_quality": settings.default_quality,
        "max_upload_bytes": settings.max_upload_bytes,
        "gallery_limit": settings.gallery_limit,
        "image_provider": settings.image_provider,
        "generation_mode": settings.generation_mode,
    }


# ---------------------------------------------------------------------------
# Prompt helpers.
# ---------------------------------------------------------------------------


@router.post("/api/prompt/compose")
async def compose(req: ComposePromptRequest) -> dict:
    """Compose free text, style and aspect ratio into the final prompt."""
    return {"prompt": compose_prompt(req.text, req.style, req.aspect_ratio)}


@router.post("/api/prompt/enhance")
async def enhance(req: ComposePromptRequest) -> dict:
    """Append a random quality enhancement to the free text."""
    return {"prompt": enhance_prompt(req.text)}


@router.get("/api/prompt/surprise")
async def surprise() -> dict:
    """Return a random example prompt."""
    return {"prompt": surprise_prompt()}


# ---------------------------------------------------------------------------
# Generation.
# ---------------------------------------------------------------------------


@router.post("/api/generate-image")
def generate_image(req: GenerateImageRequest, request: Request) -> dict:
    """Generate an image (or a written concept) for a prompt.

    Declared as a plain function so FastAPI runs the blocking provider call
    in its threadpool.

    The provider is picked by ``image_provider``.  With Gemini in
    ``description`` mode the text model writes a detailed concept and the
    response carries a placeholder image alongside it.  When the provider is
    unavailable and ``placeholder_fallback`` is on, the placeholder is
    returned with a note saying so.

    Returns:
        Envelope with ``success``, ``imageUrl``, ``prompt``, ``note`` and,
        in description mode, ``description``.

    Raises:
        PromptError: 400 when the prompt is missing or empty.
        MissingCredentialsError: 401 when the provider is not configured.
        UnexpectedResponseError: 400 when the model answered with text only.
        ProviderError: 403/429/500/503 from the provider adapter.
    """
    prompt = (req.prompt or "").strip()
    if not prompt:
        raise PromptError("Prompt is required")

    state = request.app.state
    settings = _settings(request)

    if settings.image_provider == "huggingface":
        provider = state.hf_client
        provider_label = f"Hugging Face {settings.hf_model}"
        if provider is None:
            raise MissingCredentialsError("HF_TOKEN not configured")
    else:
        provider = state.gemini_client
        provider_label = settings.image_model
        if provider is None:
            raise MissingCredentialsError("GEMINI_API_KEY not configured")

    describe = settings.image_provider == "gemini" and settings.generation_mode == "description"
    logger.info(f"Generating {'description' if describe else 'image'} for prompt: {prompt!r}")

    try:
        if describe:
            description = provider.describe_prompt(prompt)
            result = None
        else:
            result = provider.generate_image(prompt)
    except ProviderUnavailableError as e:
        if not settings.placeholder_fallback:
            raise
        logger.warning(f"Provider unavailable, returning placeholder image: {e.details}")
        return {
            "success": True,
            "imageUrl": placeholder_svg(prompt, label="Placeholder"),
            "prompt": prompt,
            "placeholder": True,
            "note": (
                "The AI provider is unavailable, so a placeholder image was "
                "substituted. Try again later for a generated image."
            ),
            "details": e.details,
        }

    if describe:
        image_url = placeholder_svg(prompt)
        _record(
            request,
            GalleryEntry(url=image_url, prompt=prompt, type="generated", description=description),
        )
        return {
            "success": True,
            "imageUrl": image_url,
            "description": description,
            "prompt": prompt,
            "note": "AI-generated visual concept with detailed description",
        }

    if not result.has_image:
        logger.info(f"Received text response instead of image: {result.text!r}")
        raise UnexpectedResponseError(
            "Model returned text instead of image. Try a more specific image prompt.",
            details=result.text,
        )

    image_url = state.artifacts.save_image(result.image_data, result.mime_type)
    logger.info(f"Image generated successfully: {image_url}")
    _record(request, GalleryEntry(url=image_url, prompt=prompt, type="generated"))

    body = {
        "success": True,
        "imageUrl": image_url,
        "prompt": prompt,
        "note": f"Generated with {provider_label}",
    }
    if result.text:
        body["description"] = result.text
    return body


# ---------------------------------------------------------------------------
# Manipulation.
# ---------------------------------------------------------------------------


@router.post("/api/manipulate-image")
async def manipulate_image(request: Request) -> dict:
    """Apply a named transform operation to an uploaded image.

    Multipart form fields:

    - ``image`` (file, required): media type must start with ``image/``.
    - ``operation``: one of ``resize``, ``crop``, ``enhance``, ``filter``,
      ``transform``, ``ai-enhance`` (default ``resize``).
    - operation-specific fields, e.g. ``width``, ``brightness``, ``flip``.
    - ``prompt``: guidance for ``ai-enhance``.
    - ``format``: ``jpeg``, ``png``, ``webp`` or ``avif`` (default jpeg).
    - ``quality``: 1–100 (default from configuration).

    Returns:
        Envelope with ``imageUrl``, ``operation``, ``parameters``,
        ``resolution``, ``originalSize``, ``processedSize`` and ``note``.

    Raises:
        InvalidInputError: 400 for a missing, empty, oversized or non-image
            upload, or an unknown operation.
        MissingCredentialsError: 401 for ``ai-enhance`` with a prompt but no
            Gemini API key.
        ImageProcessingError: 500 when the image cannot be processed.
    """
    state = request.app.state
    settings = _settings(request)
    form = await request.form()

    upload = form.get("image")
    if not isinstance(upload, UploadFile):
        raise InvalidInputError("Image file is required")

    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise InvalidInputError(
            "Please upload an image file",
            details=f"Received media type: {content_type or 'unknown'}",
        )

    operation = (_form_text(form.get("operation")) or DEFAULT_OPERATION).lower()
    if operation not in OPERATIONS:
        raise InvalidOperationError(
            f"Unknown operation: {operation}",
            details=f"operation must be one of: {', '.join(OPERATIONS)}",
        )

    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes / (1024 * 1024)
        raise InvalidInputError(f"Image size must be less than {limit_mb:g}MB")
    if not data:
        raise InvalidInputError("Uploaded image is empty")

    prompt = _form_text(form.get("prompt"))
    gemini: GeminiClient | None = state.gemini_client
    suggest = None
    if operation == "ai-enhance" and prompt:
        if gemini is None:
            raise MissingCredentialsError("GEMINI_API_KEY not configured")
        suggest = functools.partial(
            gemini.suggest_transform, image_data=data, mime_type=content_type
        )

    raw_fields = {key: value for key, value in form.items() if isinstance(value, str)}
    quality = _parse_quality(form.get("quality"), settings.default_quality)
    output_format = _form_text(form.get("format"))

    logger.info(
        f"Manipulating {upload.filename!r} ({len(data)} bytes) with operation {operation!r}"
    )
    resolved = await run_in_threadpool(
        resolve_parameters, operation, raw_fields, prompt=prompt, suggest=suggest
    )
    processed = await run_in_threadpool(
        process_image, data, resolved.params, operation, output_format, quality
    )

    if settings.persist_processed:
        image_url = state.artifacts.save_image(
            processed.data, processed.media_type, prefix="processed"
        )
    else:
        image_url = processed.to_data_uri()

    notes = [_RESOLUTION_NOTES[resolved.kind]]
    if processed.note:
        notes.append(processed.note)

    body = {
        "success": True,
        "imageUrl": image_url,
        "operation": operation,
        "parameters": resolved.params.to_dict(),
        "resolution": resolved.kind.value,
        "originalSize": processed.original_size,
        "processedSize": processed.processed_size,
        "format": processed.format,
        "width": processed.width,
        "height": processed.height,
        "note": " ".join(notes),
    }
    if prompt:
        body["prompt"] = prompt
    if resolved.reason:
        body["fallbackReason"] = resolved.reason
    if resolved.suggestion:
        body["suggestion"] = resolved.suggestion
        body["suggestionUrl"] = state.artifacts.save_text(
            f"Original Image: {upload.filename}\n"
            f"Transformation: {prompt}\n\n"
            f"Suggested Parameters:\n{resolved.suggestion}"
        )

    _record(
        request,
        GalleryEntry(url=image_url, prompt=prompt or operation, type="manipulated"),
    )
    return body


# ---------------------------------------------------------------------------
# Gallery.
# ---------------------------------------------------------------------------


@router.get("/api/gallery")
async def get_gallery(request: Request) -> dict:
    """Return the gallery history, newest first."""
    gallery = _gallery(request)
    return {"total": len(gallery), "limit": gallery.limit, "images": gallery.to_list()}


@router.post("/api/gallery")
async def add_to_gallery(req: GalleryEntryRequest, request: Request) -> dict:
    """Record an artifact in the gallery history."""
    entry = _gallery(request).add(
        GalleryEntry(url=req.url, prompt=req.prompt, type=req.type, description=req.description)
    )
    return {"success": True, "entry": entry.to_dict()}


@router.delete("/api/gallery")
async def clear_gallery(request: Request) -> dict:
    """Remove every entry from the gallery history."""
    _gallery(request).clear()
    return {"success": True}


# ---------------------------------------------------------------------------
# Error envelopes.
# ---------------------------------------------------------------------------


async def _canvas_error_handler(request: Request, exc: CanvasError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message} ({exc.details})", exc_info=exc)
    else:
        logger.warning(f"{request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"{request.url.path} returned {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=exc.headers,
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "details": str(exc.errors())},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "details": str(exc)},
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log the provider configuration on startup and shutdown."""
    settings: QuantumCanvasConfig = app.state.settings
    if not settings.api_key_set:
        logger.warning("GEMINI_API_KEY is not set; Gemini requests will be rejected.")
    logger.info(
        f"Quantum Canvas {__version__} started (provider={settings.image_provider}, "
        f"mode={settings.generation_mode}, generated_dir={settings.generated_dir})"
    )

    yield  # Application runs here.

    logger.info("Quantum Canvas shut down.")


def create_app(
    settings: QuantumCanvasConfig | None = None,
    *,
    gemini_client: Any = None,
    hf_client: Any = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration; defaults to the global ``config``.
        gemini_client: Gemini adapter override.  Built from *settings* when
            omitted (``None`` if no API key is configured).
        hf_client: Hugging Face adapter override, built the same way.

    Returns:
        The configured application.
    """
    settings = settings or config

    app = FastAPI(
        title="Quantum Canvas",
        description="Prompt-to-image generation and image manipulation API.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.gemini_client = gemini_client or GeminiClient.from_config(settings)
    app.state.hf_client = hf_client or HuggingFaceClient.from_config(settings)
    app.state.artifacts = ArtifactStore(settings.generated_dir, URL_PREFIX)
    app.state.gallery_storage = JsonFileStorage(settings.gallery_db)

    # Allow cross-origin requests so the frontend can be served from a
    # different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CanvasError, _canvas_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(router)

    app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")
    app.mount(
        URL_PREFIX,
        StaticFiles(directory=str(settings.generated_dir)),
        name="generated",
    )
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~quantum_canvas.core.config.config`.
    Exits with status 1 when no Gemini API key is configured.

    This function is registered as the ``quantum-canvas`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not config.api_key_set:
        logger.error("GEMINI_API_KEY is not set in the environment or .env file")
        sys.exit(1)

    logger.info(f"Quantum Canvas running on http://localhost:{config.server_port}")
    uvicorn.run(
        "quantum_canvas.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
