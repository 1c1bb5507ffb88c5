"""Per-user strike ledger.

Automated strikes go through a storage transaction so concurrent violations
for the same user never lose an increment.  When the strike count reaches
the configured threshold the user is banned and, in the same transaction,
all of their active listings are deactivated.

Administrator ban/unban are plain overwrites and do not take part in that
transaction; the last write wins if they race an automated strike.
"""

from __future__ import annotations

import logging
from typing import Optional

from campuskart.config import ModerationConfig
from campuskart.marketplace.models import USERS, UserTrustRecord
from campuskart.moderation.models import ViolationOutcome
from campuskart.storage import DELETE_FIELD, DocumentNotFound, DocumentStore, Transaction
from campuskart.trust.cascade import CascadeDeactivator
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)


class TrustLedger:
    """Strike counter and ban switch backed by the ``users`` collection."""

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[ModerationConfig] = None,
        cascade: Optional[CascadeDeactivator] = None,
    ) -> None:
        self._store = store
        self._config = config or ModerationConfig()
        self._cascade = cascade or CascadeDeactivator(self._config.seller_banned_reason)

    @property
    def threshold(self) -> int:
        return self._config.strike_threshold

    def register(self, user_id: str, display_name: str = "") -> UserTrustRecord:
        """Create the trust record a new account starts with.

        Idempotent: an existing record is returned unchanged.
        """

        def _apply(txn: Transaction) -> UserTrustRecord:
            data = txn.get(USERS, user_id)
            if data is not None:
                return UserTrustRecord.from_dict(user_id, data)
            record = UserTrustRecord(
                user_id=user_id,
                display_name=display_name,
                points=self._config.welcome_points,
            )
            txn.create(USERS, record.to_dict(), doc_id=user_id)
            return record

        return self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)

    # -- automated strikes ---------------------------------------------------

    def record_violation(self, user_id: str) -> ViolationOutcome:
        """Add one strike to *user_id*, banning at the threshold.

        A user without a trust record is left alone and the outcome has
        ``found=False``.  Raises TransactionAborted if the record keeps
        changing underneath the transaction.
        """

        def _apply(txn: Transaction) -> ViolationOutcome:
            data = txn.get(USERS, user_id)
            if data is None:
                return ViolationOutcome(user_id=user_id, found=False)

            record = UserTrustRecord.from_dict(user_id, data)
            strikes = record.strike_count + 1
            outcome = ViolationOutcome(user_id=user_id, strike_count=strikes, banned=record.banned)
            updates: dict = {"strike_count": strikes}

            if strikes >= self.threshold:
                updates["banned"] = True
                updates["banned_at"] = now_iso()
                outcome.banned = True
                outcome.newly_banned = not record.banned
                outcome.deactivated_listing_ids = self._cascade.deactivate_all_for(txn, user_id)

            txn.update(USERS, user_id, updates)
            return outcome

        outcome = self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)
        if not outcome.found:
            logger.info("No trust record for user %s, strike not recorded", user_id)
        elif outcome.newly_banned:
            logger.info(
                "User %s banned at %d strikes, %d listing(s) deactivated",
                user_id,
                outcome.strike_count,
                len(outcome.deactivated_listing_ids),
            )
        else:
            logger.info("User %s now has %d strike(s)", user_id, outcome.strike_count)
        return outcome

    # -- administrator overrides ---------------------------------------------

    def ban(self, user_id: str, deactivate_listings: bool = False) -> UserTrustRecord:
        """Ban *user_id* outright. Raises DocumentNotFound if unknown.

        With *deactivate_listings* the user's active listings are hidden in
        the same transaction as the ban.
        """
        if not deactivate_listings:
            data = self._store.update(USERS, user_id, {"banned": True, "banned_at": now_iso()})
            return UserTrustRecord.from_dict(user_id, data)

        def _apply(txn: Transaction) -> None:
            if txn.get(USERS, user_id) is None:
                raise DocumentNotFound(USERS, user_id)
            self._cascade.deactivate_all_for(txn, user_id)
            txn.update(USERS, user_id, {"banned": True, "banned_at": now_iso()})

        self._store.run_transaction(_apply, max_attempts=self._config.transaction_attempts)
        return self.status(user_id)

    def unban(self, user_id: str) -> UserTrustRecord:
        """Lift a ban and reset the strike count to zero."""
        data = self._store.update(
            USERS,
            user_id,
            {"banned": False, "strike_count": 0, "banned_at": DELETE_FIELD},
        )
        return UserTrustRecord.from_dict(user_id, data)

    def status(self, user_id: str) -> UserTrustRecord:
        """Return the trust record for *user_id*. Raises DocumentNotFound."""
        data = self._store.get(USERS, user_id)
        if data is None:
            raise DocumentNotFound(USERS, user_id)
        return UserTrustRecord.from_dict(user_id, data)
