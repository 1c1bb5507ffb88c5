"""Listing submission, browsing and boosting.

New listings are written in an unmoderated state; the moderation trigger
attached to the store decides whether they become visible.  With
``hold_until_moderated`` (the default) a listing stays hidden until that
decision lands, otherwise it is live from the moment it is created.
"""

from __future__ import annotations

import logging
from typing import Optional

from campuskart.config import ModerationConfig
from campuskart.marketplace.models import LISTINGS, USERS, Listing, UserTrustRecord
from campuskart.storage import DocumentNotFound, DocumentStore, Transaction
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)


class ListingRejected(Exception):
    """The caller may not perform this listing operation."""


class ListingService:
    """Owner-facing listing operations."""

    def __init__(self, store: DocumentStore, config: Optional[ModerationConfig] = None) -> None:
        self._store = store
        self._config = config or ModerationConfig()

    def submit(
        self,
        owner_id: str,
        title: str,
        description: str = "",
        price: float = 0.0,
        category: str = "",
        quantity: int = 1,
    ) -> Listing:
        """Create a listing for *owner_id* and return it after moderation.

        Banned users may not post.
        """
        owner = self._store.get(USERS, owner_id)
        if owner is not None and owner.get("banned"):
            raise ListingRejected(
                "Your account has been banned from posting due to policy violations."
            )

        now = now_iso()
        listing = Listing(
            id="",
            title=title,
            description=description,
            owner_id=owner_id,
            price=price,
            category=category,
            quantity=quantity,
            active=not self._config.hold_until_moderated,
            created_at=now,
            updated_at=now,
        )
        listing_id = self._store.create(LISTINGS, listing.to_dict())
        logger.info("Listing %s submitted by %s", listing_id, owner_id)
        return self.get(listing_id)

    def get(self, listing_id: str) -> Listing:
        data = self._store.get(LISTINGS, listing_id)
        if data is None:
            raise DocumentNotFound(LISTINGS, listing_id)
        return Listing.from_dict(listing_id, data)

    @staticmethod
    def is_visible(listing: Listing) -> bool:
        return listing.visible

    def browse(self) -> list[Listing]:
        """Visible, unsold listings: boosted first, then newest first."""
        listings = [
            Listing.from_dict(doc_id, data)
            for doc_id, data in self._store.query(LISTINGS, status="available")
        ]
        listings = [l for l in listings if self.is_visible(l)]
        boosted = sorted((l for l in listings if l.boosted), key=lambda l: l.updated_at, reverse=True)
        regular = sorted((l for l in listings if not l.boosted), key=lambda l: l.created_at, reverse=True)
        return boosted + regular

    def withdraw(self, owner_id: str, listing_id: str) -> Listing:
        """Soft-delete an owner's listing; the retention sweep purges it later."""
        listing = self.get(listing_id)
        if listing.owner_id != owner_id:
            raise ListingRejected("Only the owner can remove this listing")
        data = self._store.update(LISTINGS, listing_id, {"status": "removed", "updated_at": now_iso()})
        return Listing.from_dict(listing_id, data)

    def boost(self, user_id: str, listing_id: str) -> Listing:
        """Spend loyalty points to pin *listing_id* to the top of browse."""
        cost = self._config.boost_cost

        def _apply(txn: Transaction) -> None:
            listing_data = txn.get(LISTINGS, listing_id)
            user_data = txn.get(USERS, user_id)
            if listing_data is None:
                raise DocumentNotFound(LISTINGS, listing_id)
            if listing_data.get("owner_id") != user_id:
                raise ListingRejected("Only the owner can boost this listing")
            points = UserTrustRecord.from_dict(user_id, user_data or {}).points
            if points < cost:
                raise ListingRejected(f"Boosting costs {cost} points, you have {points}")
            txn.update(LISTINGS, listing_id, {"boosted": True, "updated_at": now_iso()})
            txn.update(USERS, user_id, {"points": points - cost})

        self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)
        logger.info("Listing %s boosted by %s", listing_id, user_id)
        return self.get(listing_id)
