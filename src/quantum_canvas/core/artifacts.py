"""Flat-file artifact storage under the ``generated/`` directory.

Generated images and transformation notes are written as timestamped files
and served back by the static mount at ``/generated``.  File names follow::

    generated-2026-10-19T09-38-12-345Z.png
    processed-2026-10-19T09-38-12-345Z.webp
    transformation-2026-10-19T09-38-12-345Z.txt

The timestamp is ISO-8601 UTC with ``:`` and ``.`` replaced by ``-`` so the
names are valid on every file system.  A short random suffix is appended when
a name is already taken, since two requests can land in the same millisecond.

This module also builds the placeholder image returned when the provider is
unavailable.  The placeholder is a deterministic SVG data URI derived from the
prompt; the response note always says that a placeholder was substituted.
"""

from __future__ import annotations

import base64
import html
import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

URL_PREFIX = "/generated"

_EXTENSION_OVERRIDES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}


def file_timestamp(now: datetime | None = None) -> str:
    """Return a file-name-safe ISO-8601 UTC timestamp."""
    moment = now or datetime.now(timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def extension_for(mime_type: str | None) -> str:
    """Map a media type to a file extension, defaulting to ``png``."""
    if not mime_type:
        return "png"
    if mime_type in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[mime_type]
    guessed = mimetypes.guess_extension(mime_type)
    return guessed.lstrip(".") if guessed else "png"


class ArtifactStore:
    """Writes artifacts into one directory and returns their public URLs.

    Args:
        directory: Target directory (created if missing).
        url_prefix: URL path the directory is mounted at.
    """

    def __init__(self, directory: Path, url_prefix: str = URL_PREFIX) -> None:
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")
        self.directory.mkdir(parents=True, exist_ok=True)

    def _target(self, prefix: str, extension: str) -> Path:
        stem = f"{prefix}-{file_timestamp()}"
        path = self.directory / f"{stem}.{extension}"
        if path.exists():
            path = self.directory / f"{stem}-{uuid.uuid4().hex[:8]}.{extension}"
        return path

    def url_for(self, path: Path) -> str:
        return f"{self.url_prefix}/{path.name}"

    def save_image(self, data: bytes, mime_type: str | None, prefix: str = "generated") -> str:
        """Write image bytes and return the ``/generated/...`` URL."""
        path = self._target(prefix, extension_for(mime_type))
        path.write_bytes(data)
        logger.info(f"Saved image artifact: {path}")
        return self.url_for(path)

    def save_text(self, text: str, prefix: str = "transformation") -> str:
        """Write a UTF-8 text note and return its URL."""
        path = self._target(prefix, "txt")
        path.write_text(text, encoding="utf-8")
        logger.info(f"Saved text artifact: {path}")
        return self.url_for(path)


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def placeholder_svg(prompt: str, label: str = "AI Generated") -> str:
    """Build the placeholder concept image as a data URI.

    The output depends only on *prompt* and *label*.
    """
    caption = prompt if len(prompt) <= 40 else f"{prompt[:40]}..."
    svg = f"""<svg width="512" height="512" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="bg" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0%" style="stop-color:#667eea;stop-opacity:1" />
      <stop offset="100%" style="stop-color:#764ba2;stop-opacity:1" />
    </linearGradient>
  </defs>
  <rect width="512" height="512" fill="url(#bg)"/>
  <circle cx="256" cy="256" r="100" fill="none" stroke="rgba(255,255,255,0.3)" stroke-width="2"/>
  <circle cx="256" cy="256" r="60" fill="none" stroke="rgba(255,255,255,0.5)" stroke-width="1"/>
  <text x="256" y="240" text-anchor="middle" fill="white" font-family="Arial, sans-serif" font-size="18" font-weight="bold">{html.escape(label)}</text>
  <text x="256" y="320" text-anchor="middle" fill="rgba(255,255,255,0.8)" font-family="Arial, sans-serif" font-size="12">"{html.escape(caption)}"</text>
</svg>"""
    return to_data_uri(svg.encode("utf-8"), "image/svg+xml")
