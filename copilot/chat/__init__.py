"""Copilot chat (tool-using, confirmation-gated).

This package turns a free-text utterance into at most one catalogued tool call:
- read-only tools run immediately, scoped to the caller's organization
- mutating tools become a pending action that needs explicit confirmation
- a deterministic keyword classifier covers for an absent or unusable model
"""
