"""Deactivation of every active listing owned by a banned seller."""

from __future__ import annotations

import logging

from campuskart.marketplace.models import LISTINGS
from campuskart.storage import Transaction

logger = logging.getLogger(__name__)


class CascadeDeactivator:
    """Stages the fan-out write that hides a banned seller's listings.

    The deactivation is always staged on a caller-supplied transaction so it
    commits (or fails) together with the ban that caused it.
    """

    def __init__(self, reason: str = "seller_banned") -> None:
        self.reason = reason

    def deactivate_all_for(self, txn: Transaction, user_id: str) -> list[str]:
        """Query *user_id*'s active listings and stage their deactivation.

        Must be called before the transaction's first write.  Returns the
        ids of the listings that will be deactivated (often none).
        """
        matches = txn.query(LISTINGS, owner_id=user_id, active=True)
        for listing_id, _ in matches:
            txn.update(
                LISTINGS,
                listing_id,
                {"active": False, "flagged": True, "flag_reason": self.reason},
            )
        if matches:
            logger.info("Deactivating %d listing(s) of banned user %s", len(matches), user_id)
        return [listing_id for listing_id, _ in matches]
