"""Administrator entry points behind the moderation console.

Every mutation checks that the acting user holds the external admin claim
and records the attempt, successful or not, in the audit log.  Failures are
re-raised so the console can report them.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from campuskart.auth.claims import ClaimStore
from campuskart.auth.permissions import require_admin
from campuskart.marketplace.models import LISTINGS, USERS, Listing, UserTrustRecord
from campuskart.security.audit_log import AuditLogger
from campuskart.storage import DELETE_FIELD, DocumentNotFound, DocumentStore
from campuskart.trust.ledger import TrustLedger
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)

REJECTED_REASON = "rejected_by_admin"
DEACTIVATED_REASON = "deactivated_by_admin"


@dataclass
class ConsoleStats:
    """Headline counts shown on the console dashboard."""

    total_users: int = 0
    banned_users: int = 0
    admin_users: int = 0
    active_listings: int = 0
    flagged_listings: int = 0
    pending_listings: int = 0


class AdminConsole:
    """Direct mutation entry points for authorised operators."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: TrustLedger,
        claims: ClaimStore,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._claims = claims
        self._audit = audit

    @contextmanager
    def _action(self, actor_id: str, action: str, resource_type: str, resource_id: str, **details) -> Iterator[None]:
        try:
            require_admin(self._claims, actor_id)
            yield
        except Exception as exc:
            logger.warning("%s on %s/%s by %s failed: %s", action, resource_type, resource_id, actor_id, exc)
            if self._audit is not None:
                self._audit.log_event(
                    actor_id, action, resource_type, resource_id,
                    details={**details, "error": str(exc)}, success=False,
                )
            raise
        else:
            logger.info("%s on %s/%s by %s", action, resource_type, resource_id, actor_id)
            if self._audit is not None:
                self._audit.log_event(actor_id, action, resource_type, resource_id, details=details)

    def _moderate_listing(self, actor_id: str, listing_id: str, fields: dict) -> Listing:
        data = self._store.update(
            LISTINGS,
            listing_id,
            {**fields, "moderated_by": actor_id, "moderated_at": now_iso()},
        )
        return Listing.from_dict(listing_id, data)

    # -- users ---------------------------------------------------------------

    def ban(self, actor_id: str, user_id: str, deactivate_listings: bool = False) -> UserTrustRecord:
        with self._action(actor_id, "user.ban", "user", user_id, deactivate_listings=deactivate_listings):
            record = self._ledger.ban(user_id, deactivate_listings=deactivate_listings)
        return record

    def unban(self, actor_id: str, user_id: str) -> UserTrustRecord:
        with self._action(actor_id, "user.unban", "user", user_id):
            record = self._ledger.unban(user_id)
        return record

    def set_admin_flag(self, actor_id: str, user_id: str, is_admin: bool) -> UserTrustRecord:
        """Flip the stored admin flag; the claim follows via the sync trigger."""
        with self._action(actor_id, "user.set_admin", "user", user_id, is_admin=is_admin):
            data = self._store.update(USERS, user_id, {"is_admin": is_admin})
        return UserTrustRecord.from_dict(user_id, data)

    # -- listings ------------------------------------------------------------

    def approve_listing(self, actor_id: str, listing_id: str) -> Listing:
        with self._action(actor_id, "listing.approve", "listing", listing_id):
            listing = self._moderate_listing(
                actor_id,
                listing_id,
                {"active": True, "approved": True, "flagged": False, "flag_reason": DELETE_FIELD},
            )
        return listing

    def reject_listing(self, actor_id: str, listing_id: str) -> Listing:
        with self._action(actor_id, "listing.reject", "listing", listing_id):
            listing = self._moderate_listing(
                actor_id,
                listing_id,
                {"active": False, "approved": False, "flagged": True, "flag_reason": REJECTED_REASON},
            )
        return listing

    def deactivate_listing(self, actor_id: str, listing_id: str) -> Listing:
        with self._action(actor_id, "listing.deactivate", "listing", listing_id):
            listing = self._moderate_listing(
                actor_id,
                listing_id,
                {"active": False, "flagged": True, "flag_reason": DEACTIVATED_REASON},
            )
        return listing

    def delete_listing(self, actor_id: str, listing_id: str) -> None:
        with self._action(actor_id, "listing.delete", "listing", listing_id):
            if not self._store.delete(LISTINGS, listing_id):
                raise DocumentNotFound(LISTINGS, listing_id)

    # -- queues and stats ----------------------------------------------------

    def pending_listings(self) -> list[Listing]:
        """Listings that are neither live nor flagged (awaiting a decision)."""
        return [
            Listing.from_dict(doc_id, data)
            for doc_id, data in self._store.query(LISTINGS, active=False, flagged=False)
        ]

    def flagged_listings(self) -> list[Listing]:
        return [
            Listing.from_dict(doc_id, data)
            for doc_id, data in self._store.query(LISTINGS, flagged=True)
        ]

    def users(self) -> list[UserTrustRecord]:
        return [UserTrustRecord.from_dict(doc_id, data) for doc_id, data in self._store.query(USERS)]

    def stats(self) -> ConsoleStats:
        users = self.users()
        listings = [Listing.from_dict(doc_id, data) for doc_id, data in self._store.query(LISTINGS)]
        return ConsoleStats(
            total_users=len(users),
            banned_users=sum(1 for u in users if u.banned),
            admin_users=sum(1 for u in users if u.is_admin),
            active_listings=sum(1 for l in listings if l.visible),
            flagged_listings=sum(1 for l in listings if l.flagged),
            pending_listings=sum(1 for l in listings if not l.active and not l.flagged),
        )
