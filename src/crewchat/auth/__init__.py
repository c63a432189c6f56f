"""Authentication: password hashing, JWT issuance and verification.

Learn: Every authenticated surface (REST and the realtime gateway)
resolves a bearer token into the same explicit Identity value through
identity_from_token(). Handlers and services receive that value as a
parameter; nothing reads the "current user" from ambient state.
"""
