"""Marketplace records and the listing, sale and retention services."""
