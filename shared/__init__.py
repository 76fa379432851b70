"""
Shared utilities for the Atlas OS gateway.

This package aggregates common building blocks consumed by the gateway
service:

- config: Immutable gateway settings via pydantic-settings
- logging: Structured logging with request/principal correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and the response envelope
- base_service: FastAPI application scaffolding

Any cross-cutting logic should live here to avoid import cycles. Do not
import from atlas_gateway into shared/.
"""
