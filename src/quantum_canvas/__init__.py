"""Quantum Canvas - prompt-to-image generation and image manipulation."""

__version__ = "0.1.0"

__all__ = ["__version__"]
