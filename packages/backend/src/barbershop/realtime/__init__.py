"""Realtime infrastructure — Redis pub/sub + server-sent events.

Learn: Events flow through two channels:
1. Services → Redis PUBLISH (backend-side broadcast)
2. Redis SUBSCRIBE → broker → SSE stream → clients (push delivery)

This decouples event producers (booking, review, notification services)
from consumers (the per-tab connection managers in barbershop.client).
"""
