"""Realtime event names.

Learn: Centralizing the wire names prevents typos between the gateway,
the WebSocket route, and tests.
"""

# ─── Client → server ─────────────────────────────────────

JOIN_CHANNEL = "joinChannel"
LEAVE_CHANNEL = "leaveChannel"
PING = "ping"

# ─── Server → client ─────────────────────────────────────

JOINED_CHANNEL = "joinedChannel"
LEFT_CHANNEL = "leftChannel"
ERROR = "error"
NEW_MESSAGE = "newMessage"
DELETED_MESSAGE = "deletedMessage"
PONG = "pong"

# Close code for connections rejected during authentication.
AUTH_FAILED_CLOSE_CODE = 4001
