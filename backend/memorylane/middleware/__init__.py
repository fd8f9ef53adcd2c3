# Middleware package init
"""
Memory Lane Backend — Middleware Package
=========================================

Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    The request ID is assigned before the logging middleware runs, so access
    log lines and error responses carry the same ID.
"""
