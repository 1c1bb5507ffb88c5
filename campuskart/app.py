"""Wires the reactive moderation pipeline onto a document store.

``build_app`` constructs every service over one store and registers the two
triggers:

- ``listings`` on create -> :meth:`ContentSubmissionGate.on_listing_created`
- ``users`` on write -> :meth:`AdminClaimSynchronizer.on_user_written`
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from campuskart.admin.console import AdminConsole
from campuskart.auth.admin_sync import AdminClaimSynchronizer
from campuskart.auth.claims import ClaimStore, FileClaimStore
from campuskart.config import ModerationConfig, default_home
from campuskart.marketplace.cleanup import RetentionSweeper
from campuskart.marketplace.listings import ListingService
from campuskart.marketplace.models import LISTINGS, USERS
from campuskart.marketplace.sales import SaleProcessor
from campuskart.moderation.gate import ContentSubmissionGate
from campuskart.security.audit_log import AuditLogger
from campuskart.storage import DocumentStore
from campuskart.trust.ledger import TrustLedger


@dataclass
class CampusKart:
    """All services sharing one store."""

    config: ModerationConfig
    store: DocumentStore
    claims: ClaimStore
    audit: AuditLogger
    ledger: TrustLedger
    gate: ContentSubmissionGate
    admin_sync: AdminClaimSynchronizer
    console: AdminConsole
    listings: ListingService
    sales: SaleProcessor
    sweeper: RetentionSweeper


def build_app(
    base_dir: Optional[str | Path] = None,
    config: Optional[ModerationConfig] = None,
    claims: Optional[ClaimStore] = None,
) -> CampusKart:
    """Build the services under *base_dir* (``~/.campuskart`` by default)."""
    home = default_home(base_dir)
    config = config or ModerationConfig()
    store = DocumentStore(home / "data")
    claims = claims or FileClaimStore(home / "auth")
    audit = AuditLogger(home / "audit_logs")

    ledger = TrustLedger(store, config)
    gate = ContentSubmissionGate(store, ledger, config, audit=audit)
    admin_sync = AdminClaimSynchronizer(store, claims)

    store.triggers.on_create(LISTINGS, gate.on_listing_created)
    store.triggers.on_write(USERS, admin_sync.on_user_written)

    return CampusKart(
        config=config,
        store=store,
        claims=claims,
        audit=audit,
        ledger=ledger,
        gate=gate,
        admin_sync=admin_sync,
        console=AdminConsole(store, ledger, claims, audit),
        listings=ListingService(store, config),
        sales=SaleProcessor(store, config),
        sweeper=RetentionSweeper(store, config),
    )
