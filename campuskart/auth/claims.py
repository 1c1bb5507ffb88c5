"""Stores for the external "admin" credential consumed by access control.

Two backends are provided:

- :class:`FileClaimStore` keeps claims in ``~/.campuskart/auth/claims.json``
  for local development and tests.
- :class:`HttpClaimStore` pushes claims to an identity provider's REST API.
  It is configured from ``IDENTITY_PROVIDER_URL`` and
  ``IDENTITY_PROVIDER_TOKEN`` when built with :meth:`HttpClaimStore.from_env`.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import httpx

from campuskart.config import default_home


class ClaimStoreError(RuntimeError):
    """The identity provider rejected or failed a claim operation."""


class ClaimStore(ABC):
    """Per-user custom claims, replaced wholesale on every write."""

    @abstractmethod
    def get_claims(self, user_id: str) -> dict[str, Any]:
        """Return the claims for *user_id* (empty when none are set)."""

    @abstractmethod
    def set_claims(self, user_id: str, claims: dict[str, Any]) -> None:
        """Replace the claims for *user_id*."""

    def is_admin(self, user_id: str) -> bool:
        return bool(self.get_claims(user_id).get("admin"))


class FileClaimStore(ClaimStore):
    """JSON-file claim storage."""

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = default_home() / "auth"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._claims_path = self._base / "claims.json"

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self._claims_path.exists():
            return {}
        try:
            data = json.loads(self._claims_path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise ClaimStoreError(f"Cannot read {self._claims_path}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def get_claims(self, user_id: str) -> dict[str, Any]:
        return dict(self._read().get(user_id, {}))

    def set_claims(self, user_id: str, claims: dict[str, Any]) -> None:
        data = self._read()
        if claims:
            data[user_id] = dict(claims)
        else:
            data.pop(user_id, None)
        try:
            self._claims_path.write_text(json.dumps(data, indent=2))
        except OSError as exc:
            raise ClaimStoreError(f"Cannot write {self._claims_path}: {exc}") from exc


class HttpClaimStore(ClaimStore):
    """Claims held by a remote identity provider.

    Expects ``GET``/``PUT {base_url}/users/{user_id}/claims`` endpoints that
    exchange ``{"claims": {...}}`` bodies and accept a bearer token.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> HttpClaimStore:
        base_url = os.environ.get("IDENTITY_PROVIDER_URL", "")
        if not base_url:
            raise ClaimStoreError("IDENTITY_PROVIDER_URL is not set")
        return cls(base_url, token=os.environ.get("IDENTITY_PROVIDER_TOKEN", ""))

    def get_claims(self, user_id: str) -> dict[str, Any]:
        try:
            resp = self._client.get(f"/users/{user_id}/claims")
            if resp.status_code == 404:
                return {}
            resp.raise_for_status()
            return dict(resp.json().get("claims") or {})
        except (httpx.HTTPError, ValueError) as exc:
            raise ClaimStoreError(f"Fetching claims for {user_id} failed: {exc}") from exc

    def set_claims(self, user_id: str, claims: dict[str, Any]) -> None:
        try:
            resp = self._client.put(f"/users/{user_id}/claims", json={"claims": claims})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ClaimStoreError(f"Setting claims for {user_id} failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()
