"""Barbershop realtime — push delivery for the barbershop booking platform.

Server-sent event stream for booking, review and notification updates,
plus the client-side connection manager that consumes it: reconnect with
backoff, cross-tab relay, deduplicated dispatch and polling fallback.
"""

__version__ = "0.1.0"
