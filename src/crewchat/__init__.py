"""CrewChat — group messaging backend.

Accounts, named channels (public, private, direct messages), membership,
and persisted text messages, with a realtime gateway that pushes message
lifecycle events to connected clients.
"""

__version__ = "0.1.0"
