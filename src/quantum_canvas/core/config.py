"""Configuration management for Quantum Canvas.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the QUANTUM_CANVAS_
prefix, allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (QUANTUM_CANVAS_* prefix)
2. .env file in the project root
3. Default values defined in QuantumCanvasConfig

The provider credentials and the port also accept the conventional unprefixed
names, so an existing ``.env`` keeps working:

    GEMINI_API_KEY=...
    HF_TOKEN=...
    PORT=3000

Example .env file:
    QUANTUM_CANVAS_IMAGE_PROVIDER=gemini
    QUANTUM_CANVAS_GENERATION_MODE=image
    QUANTUM_CANVAS_PROVIDER_TIMEOUT=45
    QUANTUM_CANVAS_GENERATED_DIR=generated

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from quantum_canvas.core.config import config

    print(config.image_model)
    print(config.generated_dir)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- generated_dir: Generated images and transformation notes (served at /generated)
- data_dir: The persisted gallery history (gallery.json)

Provider Capability Flags
-------------------------
- image_provider: "gemini" (inline image parts) or "huggingface" (Stable
  Diffusion through the Inference API, requires hf_token)
- generation_mode: "image" asks the image model for pixels, "description"
  asks the text model for a written concept plus a placeholder image
- placeholder_fallback: substitute a deterministic placeholder image when the
  provider is unreachable instead of failing the request
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class QuantumCanvasConfig(BaseSettings):
    """Main configuration for Quantum Canvas.

    This class uses Pydantic Settings to manage all application configuration.
    Values are loaded from environment variables with the QUANTUM_CANVAS_
    prefix, with fallback to defaults defined here.

    Attributes
    ----------
    Provider Credentials:
        gemini_api_key : str | None
            Google Gemini API key (also read from GEMINI_API_KEY)
        hf_token : str | None
            Hugging Face token enabling the Stable Diffusion path (also HF_TOKEN)

    Provider Settings:
        image_provider : Literal["gemini", "huggingface"]
            Which provider serves /api/generate-image
        generation_mode : Literal["image", "description"]
            Whether Gemini is asked for an image or a written description
        text_model : str
            Gemini model used for descriptions and transform suggestions
        image_model : str
            Gemini model used for image generation
        hf_model : str
            Hugging Face model ID used for text-to-image
        placeholder_fallback : bool
            Return a placeholder image when the provider is unavailable
        provider_timeout : float
            Per-request provider timeout in seconds

    Upload & Encoding:
        max_upload_bytes : int
            Upload size ceiling for /api/manipulate-image
        default_quality : int
            Encoder quality when the form omits one (1-100)
        persist_processed : bool
            Write manipulated images to generated_dir instead of data URIs

    Paths:
        generated_dir : Path
            Directory for generated artifacts, served at /generated
        data_dir : Path
            Directory holding gallery.json
        static_dir : Path
            Directory with the browser client's JS/CSS
        templates_dir : Path
            Directory with index.html

    Gallery:
        gallery_limit : int
            Maximum number of history entries kept

    Server:
        server_host : str
            Bind address
        server_port : int
            Bind port (also read from PORT)
        log_level : str
            Root logging level used by the CLI entry point

    Notes
    -----
    - All directories are created automatically if they don't exist
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QUANTUM_CANVAS_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Provider credentials
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("QUANTUM_CANVAS_GEMINI_API_KEY", "GEMINI_API_KEY"),
        description="Google Gemini API key",
    )
    hf_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("QUANTUM_CANVAS_HF_TOKEN", "HF_TOKEN"),
        description="Hugging Face token for the Stable Diffusion path",
    )

    # Provider settings
    image_provider: Literal["gemini", "huggingface"] = Field(
        default="gemini",
        description="Provider serving /api/generate-image",
    )
    generation_mode: Literal["image", "description"] = Field(
        default="image",
        description="'image' for inline image data, 'description' for a text concept",
    )
    text_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini text model",
    )
    image_model: str = Field(
        default="gemini-2.5-flash-image-preview",
        description="Gemini image generation model",
    )
    hf_model: str = Field(
        default="stabilityai/stable-diffusion-xl-base-1.0",
        description="Hugging Face text-to-image model ID",
    )
    placeholder_fallback: bool = Field(
        default=True,
        description="Substitute a placeholder image when the provider is unavailable",
    )
    provider_timeout: float = Field(
        default=60.0,
        description="Provider call timeout in seconds",
        gt=0,
        le=600,
    )

    # Upload & encoding
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
        ge=1,
    )
    default_quality: int = Field(default=80, ge=1, le=100)
    persist_processed: bool = Field(
        default=False,
        description="Save manipulated images under generated_dir",
    )

    # Paths
    generated_dir: Path = Field(
        default=Path("generated"),
        description="Directory for generated artifacts",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for gallery.json",
    )
    static_dir: Path = Field(
        default=_PACKAGE_DIR / "static",
        description="Directory with static client assets",
    )
    templates_dir: Path = Field(
        default=_PACKAGE_DIR / "templates",
        description="Directory with index.html",
    )

    # Gallery
    gallery_limit: int = Field(default=20, ge=1, le=500)

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=3000,
        validation_alias=AliasChoices("QUANTUM_CANVAS_SERVER_PORT", "PORT"),
        description="Server port",
        ge=1,
        le=65535,
    )
    log_level: str = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.generated_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def gallery_db(self) -> Path:
        """Path to the persisted gallery history."""
        return self.data_dir / "gallery.json"

    @property
    def api_key_set(self) -> bool:
        """Whether a Gemini API key is configured."""
        return bool(self.gemini_api_key)


# Global configuration instance
# Loads values from environment variables (QUANTUM_CANVAS_* prefix) and .env file.
config = QuantumCanvasConfig()
