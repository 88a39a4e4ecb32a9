"""
Notice Service package for the Notice Relay.

This package exposes the FastAPI application that accepts notices from
trusted callers and forwards them to WeCom:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.credentials: Access token cache with single-flight renewal.
- app.dispatch: Request validation, payload building, result classification.
- app.adapters: HTTP client for the WeCom identity and message endpoints.

Design notes:
- Module import must not perform network calls. The only startup IO is the
  optional token prefetch in the lifespan hook.
- Use the shared/ utilities for logging, metrics, config, and errors.
"""
