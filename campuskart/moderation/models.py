"""Data models for the content moderation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ModerationDecision:
    """Result of classifying a listing's free text."""

    flagged: bool
    reason: Optional[str] = None
    matched_term: Optional[str] = None


@dataclass
class ViolationOutcome:
    """What one recorded strike did to a user's trust record."""

    user_id: str
    found: bool = True
    strike_count: int = 0
    banned: bool = False
    newly_banned: bool = False
    deactivated_listing_ids: list[str] = field(default_factory=list)
