"""Automated content moderation for new listings."""
