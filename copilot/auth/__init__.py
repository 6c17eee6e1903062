"""
Authentication helpers for the copilot API.

Design goals:
- Signed, stateless session tokens (cookie or bearer header).
- Organization, user and role always come from the session, never the request body.
- Fail closed: anything not explicitly public requires a valid session.
"""
