"""Pydantic request models for the Quantum Canvas API.

These models define the JSON schema for the JSON-bodied endpoints.  The
manipulate-image endpoint takes a multipart form whose field set depends on
the operation, so it reads the form directly instead.

Models
------
GenerateImageRequest
    Payload for ``POST /api/generate-image``.
ComposePromptRequest
    Payload for ``POST /api/prompt/compose`` and ``POST /api/prompt/enhance``.
GalleryEntryRequest
    Payload for ``POST /api/gallery``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class GenerateImageRequest(BaseModel):
    """Request body for the ``POST /api/generate-image`` endpoint.

    ``prompt`` is optional at the schema level so that a missing prompt is
    answered with the API's own 400 envelope rather than a schema error.

    Attributes:
        prompt: The (already composed) image prompt.
    """

    prompt: str | None = Field(
        default=None,
        description="Image prompt; required and non-empty.",
    )


class ComposePromptRequest(BaseModel):
    """Request body for the prompt composition endpoints.

    Attributes:
        text: Free-text description.
        style: Style preset id, e.g. ``"watercolor"``.
        aspect_ratio: Aspect-ratio preset, e.g. ``"16:9"``.
    """

    text: str | None = Field(default=None, description="Free-text description.")
    style: str | None = Field(default=None, description="Style preset id.")
    aspect_ratio: str | None = Field(default="1:1", description="Aspect-ratio preset.")


class GalleryEntryRequest(BaseModel):
    """Request body for the ``POST /api/gallery`` endpoint.

    Attributes:
        url: Artifact reference returned by a generate/manipulate call.
        prompt: Prompt the artifact was created from.
        type: ``"generated"`` or ``"manipulated"``.
        description: Optional model description.
    """

    url: str = Field(..., min_length=1, description="Artifact URL or data URI.")
    prompt: str = Field(..., description="Prompt the artifact was created from.")
    type: Literal["generated", "manipulated"] = Field(default="generated")
    description: str | None = Field(default=None)
