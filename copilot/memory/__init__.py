"""
Copilot memory: store configuration and per-caller conversation state.
"""
