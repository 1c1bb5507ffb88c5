"""CampusKart trust and moderation pipeline.

Moderates newly submitted marketplace listings, tracks per-user strikes,
bans repeat offenders (deactivating their listings), and keeps the
external admin credential in step with the stored profile flag.
"""

__version__ = "0.1.0"
