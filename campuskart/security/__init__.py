"""Audit trail of moderation and administrator actions."""
