# Middleware package init
"""
Streak Engine — Middleware Package
====================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Request ID runs first so the access log line carries the correlation ID.
"""
