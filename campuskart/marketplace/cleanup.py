"""Periodic purge of sold and withdrawn listings."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from campuskart.config import ModerationConfig
from campuskart.marketplace.models import LISTINGS
from campuskart.storage import DocumentStore, Transaction
from campuskart.utils.clock import parse_iso

logger = logging.getLogger(__name__)

PURGEABLE_STATUSES = ("sold", "removed")


class RetentionSweeper:
    """Deletes listings that left the marketplace more than N days ago."""

    def __init__(self, store: DocumentStore, config: Optional[ModerationConfig] = None) -> None:
        self._store = store
        self._config = config or ModerationConfig()

    def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Delete every sold/removed listing last updated before the cutoff.

        All deletions commit together.  Returns the deleted listing ids.
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=self._config.retention_days)

        def _apply(txn: Transaction) -> list[str]:
            stale = []
            for status in PURGEABLE_STATUSES:
                for listing_id, data in txn.query(LISTINGS, status=status):
                    updated_at = data.get("updated_at")
                    if updated_at and parse_iso(updated_at) <= cutoff:
                        stale.append(listing_id)
            for listing_id in stale:
                txn.delete(LISTINGS, listing_id)
            return stale

        deleted = self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)
        if deleted:
            logger.info("Cleaned up %d old listing(s) (sold/removed)", len(deleted))
        else:
            logger.info("No old listings to delete")
        return deleted
