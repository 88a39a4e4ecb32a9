"""
Shared utilities for the Notice Relay.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings (env, .env, YAML)
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error kinds and responses
- base_service: FastAPI application shell shared by services

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
