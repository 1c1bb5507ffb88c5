"""Marketplace domain models: listings and per-user trust records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

LISTINGS = "listings"
USERS = "users"
TRANSACTIONS = "transactions"


def _known(cls: type, d: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in d.items() if k in names}


@dataclass
class Listing:
    """A user-submitted item for sale.

    Visible to buyers if and only if ``active`` and not ``flagged``.
    """

    id: str
    title: str = ""
    description: str = ""
    owner_id: str = ""
    price: float = 0.0
    category: str = ""
    quantity: int = 1
    status: str = "available"  # available | sold | removed
    active: bool = False
    approved: bool = False
    flagged: bool = False
    flag_reason: Optional[str] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[str] = None
    boosted: bool = False
    sold_to_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def visible(self) -> bool:
        return self.active and not self.flagged

    @classmethod
    def from_dict(cls, doc_id: str, d: dict[str, Any]) -> Listing:
        data = _known(cls, d)
        data.pop("id", None)
        listing = cls(id=doc_id, **data)
        listing.title = listing.title or ""
        listing.description = listing.description or ""
        return listing

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("id")
        return d


@dataclass
class UserTrustRecord:
    """Per-user moderation state, keyed by user id."""

    user_id: str
    display_name: str = ""
    strike_count: int = 0
    banned: bool = False
    banned_at: Optional[str] = None
    is_admin: bool = False
    admin_synced_at: Optional[str] = None
    admin_setup_at: Optional[str] = None
    points: int = 0

    @classmethod
    def from_dict(cls, user_id: str, d: dict[str, Any]) -> UserTrustRecord:
        data = _known(cls, d)
        data.pop("user_id", None)
        record = cls(user_id=user_id, **data)
        record.strike_count = int(record.strike_count or 0)
        record.points = int(record.points or 0)
        record.banned = bool(record.banned)
        record.is_admin = bool(record.is_admin)
        return record

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("user_id")
        return d
