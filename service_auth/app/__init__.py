"""
Auth Service package for the access token layer.

Exposes the FastAPI application that verifies access tokens presented by
other services:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.validation: Token verification and user info projection.

Design notes:
- Keep the package import side-effects minimal; key material is loaded on
  first use, not at import.
- Use the shared/ utilities for tokens, logging, metrics, and errors.
- The service never issues tokens; it only verifies them.
"""
