"""picshare — FastAPI HTTP layer.

This package renders the core's results and maps its errors to responses.

Modules
-------
main
    FastAPI application factory, all route handlers, the core error
    handler, and the ``main()`` CLI entry point.
models
    Pydantic models for API responses.
"""
