"""Deployment configuration for the moderation pipeline.

The blacklist, strike threshold and policy codes are owned by the core but
can be overridden per deployment with a YAML file::

    blacklist: [scam, counterfeit]
    strike_threshold: 5
    hold_until_moderated: false

Keys that do not name a :class:`ModerationConfig` field are ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

CONFIG_ENV_VAR = "CAMPUSKART_CONFIG"
HOME_ENV_VAR = "CAMPUSKART_HOME"

DEFAULT_BLACKLIST: list[str] = [
    "fuck",
    "shit",
    "bitch",
    "asshole",
    "nigger",
    "cunt",
    "slur-example",
]


@dataclass
class ModerationConfig:
    """Tunable constants for moderation, strikes and loyalty points."""

    blacklist: list[str] = field(default_factory=lambda: list(DEFAULT_BLACKLIST))
    strike_threshold: int = 3
    violation_reason: str = "profanity_or_policy_violation"
    seller_banned_reason: str = "seller_banned"
    moderator_id: str = "automated-moderator"
    transaction_attempts: int = 5
    hold_until_moderated: bool = True
    retention_days: int = 7
    sale_points: int = 5
    boost_cost: int = 25
    welcome_points: int = 5

    def __post_init__(self) -> None:
        if self.strike_threshold < 1:
            raise ValueError("strike_threshold must be at least 1")
        if self.transaction_attempts < 1:
            raise ValueError("transaction_attempts must be at least 1")
        if not isinstance(self.blacklist, (list, tuple)) or not all(
            isinstance(term, str) for term in self.blacklist
        ):
            raise ValueError("blacklist must be a list of strings")
        cleaned = [term.strip().lower() for term in self.blacklist]
        if any(not term for term in cleaned):
            raise ValueError("blacklist terms must be non-empty")
        self.blacklist = cleaned


def load_config(path: str | Path | None = None) -> ModerationConfig:
    """Load a :class:`ModerationConfig` from YAML.

    Falls back to ``$CAMPUSKART_CONFIG`` and then to the built-in defaults.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return ModerationConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(ModerationConfig)}
    return ModerationConfig(**{k: v for k, v in data.items() if k in known})


def default_home(base_dir: Optional[str | Path] = None) -> Path:
    """Return the data directory (``~/.campuskart`` unless overridden)."""
    if base_dir is not None:
        return Path(base_dir)
    env = os.environ.get(HOME_ENV_VAR)
    if env:
        return Path(env)
    return Path.home() / ".campuskart"
