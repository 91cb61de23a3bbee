"""Core functionality for Quantum Canvas.

This package holds everything the HTTP layer delegates to:

- **QuantumCanvasConfig**: configuration using Pydantic Settings
- **config**: global configuration instance (loads from environment variables)
- **Prompt composition**: style and aspect-ratio presets, enhancements
- **Transforms**: operation parameter parsing and AI suggestion resolution
- **Image pipeline**: Pillow stages and output encoding
- **Provider adapters**: Gemini and Hugging Face clients
- **Artifacts and gallery**: flat-file outputs and bounded history

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - Settings prefixed with QUANTUM_CANVAS_ (``GEMINI_API_KEY``,
     ``HF_TOKEN`` and ``PORT`` are also accepted)
   - Automatic directory creation

2. **Domain Layer** (prompt_composer.py, transforms.py, image_pipeline.py):
   - Pure functions, no network access
   - Errors raised from the errors.py taxonomy

3. **Provider Layer** (ai_client.py):
   - Wraps the google-genai and huggingface_hub SDKs
   - Classifies SDK failures into quota/access/availability errors

4. **Persistence Layer** (artifacts.py, gallery.py):
   - Timestamped files under ``generated/``
   - ``gallery.json`` capped at 20 entries

Usage Example
-------------
    from quantum_canvas.core import TransformParams, process_image

    params = TransformParams(width=256, fit="cover")
    result = process_image(data, params, "resize", output_format="webp")

See Also
--------
- QuantumCanvasConfig: Configuration options and environment variables
- resolve_parameters: Parameter resolution for every operation
"""

from quantum_canvas.core.config import QuantumCanvasConfig, config
from quantum_canvas.core.errors import CanvasError
from quantum_canvas.core.image_pipeline import ProcessedImage, process_image
from quantum_canvas.core.prompt_composer import compose_prompt, enhance_prompt, surprise_prompt
from quantum_canvas.core.transforms import (
    ResolutionKind,
    ResolvedParameters,
    TransformParams,
    resolve_parameters,
)

__all__ = [
    "CanvasError",
    "ProcessedImage",
    "QuantumCanvasConfig",
    "ResolutionKind",
    "ResolvedParameters",
    "TransformParams",
    "compose_prompt",
    "config",
    "enhance_prompt",
    "process_image",
    "resolve_parameters",
    "surprise_prompt",
]
