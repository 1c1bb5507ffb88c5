"""Automated moderation of newly created listings.

Each new listing's title and description are checked against the configured
blacklist using whole-word, case-insensitive matching, so a blacklisted
token embedded in a longer harmless word does not count.  A clean listing is
approved and made active; a violating one is deactivated and its owner
receives a strike through the :class:`TrustLedger`.

The gate runs once per listing, from the store's ``on_create`` trigger.
Edits are not re-evaluated.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from campuskart.config import ModerationConfig
from campuskart.marketplace.models import LISTINGS, Listing
from campuskart.moderation.models import ModerationDecision
from campuskart.security.audit_log import AuditLogger
from campuskart.storage import ChangeEvent, DocumentNotFound, DocumentStore, TransactionAborted
from campuskart.trust.ledger import TrustLedger
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)


def _normalize(title: Optional[str], description: Optional[str]) -> str:
    return f"{title or ''} \n {description or ''}".lower()


class ContentSubmissionGate:
    """Approves or rejects listings on creation."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: TrustLedger,
        config: Optional[ModerationConfig] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._config = config or ModerationConfig()
        self._audit = audit
        self._patterns: list[tuple[str, re.Pattern[str]]] = [
            (term, re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE))
            for term in self._config.blacklist
        ]

    # -- classification ------------------------------------------------------

    def find_violation(self, text: str) -> Optional[str]:
        """Return the first blacklisted term appearing as a whole word."""
        for term, pattern in self._patterns:
            if pattern.search(text):
                return term
        return None

    def classify(self, title: Optional[str], description: Optional[str]) -> ModerationDecision:
        """Decide whether a title/description pair violates policy.

        Missing fields are treated as empty strings.  No side effects.
        """
        term = self.find_violation(_normalize(title, description))
        if term is None:
            return ModerationDecision(flagged=False)
        return ModerationDecision(flagged=True, reason=self._config.violation_reason, matched_term=term)

    # -- evaluation ----------------------------------------------------------

    def evaluate(self, listing: Listing) -> ModerationDecision:
        """Classify *listing*, stamp the decision on it and strike the owner.

        If the listing was deleted in the meantime nothing is written and no
        strike is recorded.
        """
        decision = self.classify(listing.title, listing.description)
        moderator = self._config.moderator_id

        if decision.flagged:
            updates = {
                "active": False,
                "flagged": True,
                "flag_reason": decision.reason,
                "moderated_by": moderator,
                "moderated_at": now_iso(),
            }
        else:
            updates = {
                "active": True,
                "flagged": False,
                "approved": True,
                "moderated_by": moderator,
                "moderated_at": now_iso(),
            }

        try:
            self._store.update(LISTINGS, listing.id, updates)
        except DocumentNotFound:
            logger.info("Listing %s no longer exists, moderation skipped", listing.id)
            return decision

        logger.info("Moderation finished for listing %s, flagged=%s", listing.id, decision.flagged)
        if self._audit is not None:
            self._audit.log_event(
                actor=moderator,
                action="listing.flag" if decision.flagged else "listing.approve",
                resource_type="listing",
                resource_id=listing.id,
                details={"reason": decision.reason, "term": decision.matched_term} if decision.flagged else {},
            )

        if decision.flagged and listing.owner_id:
            try:
                self._ledger.record_violation(listing.owner_id)
            except TransactionAborted:
                logger.error("Could not record strike for user %s (listing %s)", listing.owner_id, listing.id)
        return decision

    def on_listing_created(self, event: ChangeEvent) -> None:
        """``on_create`` trigger for the listings collection."""
        if event.after is None:
            return
        self.evaluate(Listing.from_dict(event.doc_id, event.after))
