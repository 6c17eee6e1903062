"""
Authorization and policy for the copilot.

Role-based tool gating plus env-driven runtime policy (conflict handling,
expiry, result caps, redaction).
"""
