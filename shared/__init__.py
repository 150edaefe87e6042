"""
Shared utilities for the access token layer.

This package aggregates the building blocks consumed by all services:

- access_token: Issue and verify signed / encrypted access tokens
- token_config: Process-wide key material with scoped overrides
- token_keys: Key loading and issuer trust resolution
- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
