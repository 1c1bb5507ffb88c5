"""Admin gate for console operations, based on the external admin claim."""

from __future__ import annotations

from campuskart.auth.claims import ClaimStore


class PermissionDenied(Exception):
    """The caller is unauthenticated or lacks the admin claim."""


def has_admin_claim(claims: ClaimStore, user_id: str) -> bool:
    return bool(user_id) and claims.is_admin(user_id)


def require_admin(claims: ClaimStore, user_id: str) -> None:
    """Raise PermissionDenied unless *user_id* holds the admin claim.

    Usage in a console action::

        require_admin(self._claims, actor_id)
        ...
    """
    if not user_id:
        raise PermissionDenied("Must be authenticated")
    if not claims.is_admin(user_id):
        raise PermissionDenied(f"User '{user_id}' requires the admin claim")
