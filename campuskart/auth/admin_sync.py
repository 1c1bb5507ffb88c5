"""Keeps the external admin claim in step with ``users.{id}.is_admin``.

Registered as an ``on_write`` trigger on the users collection: whenever the
stored flag flips, the claim is granted or revoked and the profile is
stamped with ``admin_synced_at``.  Provider failures are logged and left for
a later write to repair; the profile write itself is never undone.
"""

from __future__ import annotations

import logging
from enum import Enum

from campuskart.auth.claims import ClaimStore, ClaimStoreError
from campuskart.auth.permissions import PermissionDenied
from campuskart.marketplace.models import USERS
from campuskart.storage import ChangeEvent, DocumentNotFound, DocumentStore
from campuskart.utils.clock import now_iso

logger = logging.getLogger(__name__)


class SyncResult(str, Enum):
    unchanged = "unchanged"
    granted = "granted"
    revoked = "revoked"
    failed = "failed"


class AdminClaimSynchronizer:
    """Mirrors the profile admin flag onto a :class:`ClaimStore`."""

    def __init__(self, store: DocumentStore, claims: ClaimStore) -> None:
        self._store = store
        self._claims = claims

    def on_user_written(self, event: ChangeEvent) -> SyncResult:
        user_id = event.doc_id
        was_admin = bool((event.before or {}).get("is_admin"))
        is_admin = bool((event.after or {}).get("is_admin"))
        if was_admin == is_admin:
            return SyncResult.unchanged

        try:
            if is_admin:
                self._claims.set_claims(user_id, {"admin": True})
                result = SyncResult.granted
            else:
                self._claims.set_claims(user_id, {})
                result = SyncResult.revoked
        except ClaimStoreError:
            logger.exception("Error syncing admin claim for %s", user_id)
            return SyncResult.failed
        logger.info("Admin claim %s for %s", result.value, user_id)

        if event.after is not None:
            try:
                self._store.update(USERS, user_id, {"admin_synced_at": now_iso()})
            except DocumentNotFound:
                logger.warning("User %s disappeared before the sync stamp was written", user_id)
        return result

    def self_grant_admin(self, caller_id: str) -> None:
        """Make *caller_id* an admin directly, for first-time setup.

        The claim is granted first, directly, so a provider failure
        propagates before the profile is touched.  The profile write that
        follows still fires :meth:`on_user_written` when the flag flips,
        which re-sends the same claim and stamps ``admin_synced_at``.
        """
        if not caller_id:
            raise PermissionDenied("Must be authenticated")
        self._claims.set_claims(caller_id, {"admin": True})
        self._store.set(
            USERS,
            caller_id,
            {"is_admin": True, "admin_setup_at": now_iso()},
            merge=True,
        )
        logger.info("Manually granted admin claim to %s", caller_id)
