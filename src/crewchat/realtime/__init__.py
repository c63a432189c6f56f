"""Realtime layer — in-process channel fan-out over WebSockets.

Learn: Events flow one way through two hops:
1. Message service → RealtimeGateway.broadcast_*() after a committed write
2. Gateway → every connection subscribed to that channel (per-connection
   outbound queue, drained by the connection's own sender task)

Subscriptions are ephemeral and client-declared; persisted membership
stays the authorization source for writing and reading history.
"""
