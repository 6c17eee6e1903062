"""
Record storage for the CRM tables the copilot reads and writes.

Postgres when configured; an in-process store otherwise (dev/tests).
"""
