"""Authentication and session revocation.

Learn: Users authenticate with JWT bearer tokens. Tokens are stateless,
so logout and force-logout are implemented by an in-memory revocation
registry consulted after signature verification.
"""
