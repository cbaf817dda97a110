# Middleware package init
"""
Research Gate Backend — Middleware Package
============================================

What:  Cross-cutting HTTP concerns applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [Request ID] → [Logging] → Route / Dispatcher

    CORS answers preflight OPTIONS before any routing. Request ID is set
    before Logging runs so the access line carries the correlation ID.
"""
