"""Quantum Canvas — FastAPI REST API layer.

This package contains the FastAPI application and the Pydantic request
models.

Modules
-------
main
    FastAPI application factory, all route handlers, error envelope
    handlers, and the ``main()`` CLI entry point.
models
    Pydantic models for JSON request validation.
"""
