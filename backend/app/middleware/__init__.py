"""
Lyceum Backend — Middleware Package
=====================================

Cross-cutting concerns applied to every request.

Middleware chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

Rate limiting runs first so rejected requests cost nothing further. The
request ID is set before logging so every access line carries it.
"""
