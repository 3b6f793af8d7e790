"""Realtime event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover every event the push stream can carry.
The names use the "<domain>:<action>" form that travels on the wire.
"""

# ─── Notifications ───────────────────────────────────────

NOTIFICATION_NEW = "notification:new"
NOTIFICATION_READ = "notification:read"
NOTIFICATION_REFRESH = "notification:refresh"

# ─── Bookings, reviews, dashboards ───────────────────────

APPOINTMENT_CHANGED = "appointment:changed"
REVIEW_UPDATED = "review:updated"
ANALYTICS_UPDATED = "analytics:updated"

# ─── Connection lifecycle ────────────────────────────────

LIVE_STATUS = "live:status"
LIVE_HEARTBEAT = "live:heartbeat"

# Matches every event type in a subscription filter
WILDCARD = "*"

ALL_EVENT_TYPES = frozenset({
    NOTIFICATION_NEW,
    NOTIFICATION_READ,
    NOTIFICATION_REFRESH,
    APPOINTMENT_CHANGED,
    REVIEW_UPDATED,
    ANALYTICS_UPDATED,
    LIVE_STATUS,
    LIVE_HEARTBEAT,
})
