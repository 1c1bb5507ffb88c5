"""Strike counting, bans and ban-triggered listing deactivation."""

from campuskart.trust.cascade import CascadeDeactivator
from campuskart.trust.ledger import TrustLedger

__all__ = ["CascadeDeactivator", "TrustLedger"]
