"""Recruit copilot: conversational action orchestrator for the recruitment CRM."""
