"""Sale processing: stock update, loyalty points and transaction logs.

Everything a sale touches is written in one transaction so a sale is either
fully recorded or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from campuskart.config import ModerationConfig
from campuskart.marketplace.models import LISTINGS, TRANSACTIONS, USERS, Listing
from campuskart.storage import DocumentStore, Transaction
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)

PERISHABLE_CATEGORY = "Food"


@dataclass
class SaleReceipt:
    """Outcome of a processed sale."""

    listing_id: str
    fully_sold: bool
    points_awarded: int
    transaction_ids: list[str] = field(default_factory=list)


class SaleProcessor:
    """Records completed sales between two users."""

    def __init__(self, store: DocumentStore, config: Optional[ModerationConfig] = None) -> None:
        self._store = store
        self._config = config or ModerationConfig()

    def process_sale(
        self,
        listing_id: str,
        seller_id: str,
        buyer_id: str,
        price: Optional[float] = None,
    ) -> Optional[SaleReceipt]:
        """Mark *listing_id* sold to *buyer_id* and reward both parties.

        Food listings with more than one unit left only lose one unit.
        Returns None when the listing does not exist.
        """
        award = self._config.sale_points

        def _apply(txn: Transaction) -> Optional[SaleReceipt]:
            data = txn.get(LISTINGS, listing_id)
            if data is None:
                return None
            listing = Listing.from_dict(listing_id, data)
            balances = {}
            for user_id in dict.fromkeys([seller_id, buyer_id]):
                user = txn.get(USERS, user_id) or {}
                balances[user_id] = int(user.get("points") or 0)

            now = now_iso()
            if listing.category == PERISHABLE_CATEGORY and listing.quantity > 1:
                txn.update(LISTINGS, listing_id, {"quantity": listing.quantity - 1, "updated_at": now})
                fully_sold = False
            else:
                txn.update(
                    LISTINGS,
                    listing_id,
                    {"status": "sold", "sold_to_id": buyer_id, "quantity": 0, "updated_at": now},
                )
                fully_sold = True

            for user_id in (seller_id, buyer_id):
                balances[user_id] += award
            for user_id, points in balances.items():
                txn.set(USERS, user_id, {"points": points}, merge=True)

            sale_price = listing.price if price is None else price
            ids = []
            for user_id, kind, counterpart in (
                (seller_id, "sale", buyer_id),
                (buyer_id, "purchase", seller_id),
            ):
                ids.append(
                    txn.create(
                        TRANSACTIONS,
                        {
                            "user_id": user_id,
                            "type": kind,
                            "listing_id": listing_id,
                            "listing_title": listing.title,
                            "price": sale_price,
                            "counterpart_id": counterpart,
                            "points_awarded": award,
                            "created_at": now,
                        },
                    )
                )
            return SaleReceipt(listing_id, fully_sold, award, ids)

        receipt = self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)
        if receipt is None:
            logger.info("Listing %s not found, sale ignored", listing_id)
        else:
            logger.info("Processed sale of listing %s (fully_sold=%s)", listing_id, receipt.fully_sold)
        return receipt

    def history(self, user_id: str) -> list[dict]:
        """Return *user_id*'s sale and purchase logs, newest first."""
        logs = [dict(data, id=doc_id) for doc_id, data in self._store.query(TRANSACTIONS, user_id=user_id)]
        logs.sort(key=lambda d: d.get("created_at", ""), reverse=True)
        return logs
