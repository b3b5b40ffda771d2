"""
Auth service test suite.

This package contains all test modules organized by test type:
- integration/ - API tests through the FastAPI TestClient
- unit/ - Unit tests for pool, tokens, sessions, rotation, limiter and repositories
"""
